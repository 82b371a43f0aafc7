"""Schema v2 - Track geocoding state on addresses.

Adds geocode_status ('pending', 'resolved', 'failed') and geocoded_at so
lazy geocoding has an explicit persisted state instead of inferring it
from null coordinates.
"""
import copy

from .v1 import schema as _v1

_tables = copy.deepcopy(_v1['tables'])
for _table in _tables:
    if _table['name'] == 'addresses':
        _table['columns'][-2:-2] = [
            {'name': 'geocode_status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
            {'name': 'geocoded_at', 'type': 'TIMESTAMP'}
        ]

schema = {
    'version': 2,
    'tables': _tables,
    'migrations': [
        "ALTER TABLE addresses ADD COLUMN IF NOT EXISTS geocode_status TEXT NOT NULL DEFAULT 'pending'",
        "ALTER TABLE addresses ADD COLUMN IF NOT EXISTS geocoded_at TIMESTAMP",
        '''
        UPDATE addresses
        SET geocode_status = 'resolved', geocoded_at = updated_at
        WHERE geocoded_lat IS NOT NULL AND geocoded_lon IS NOT NULL
        '''
    ]
}
