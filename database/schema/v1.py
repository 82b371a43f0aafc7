"""Schema v1 - Initial database schema.

This version includes tables for:
- Users, their addresses and login sessions
- Tools, tool categories and tool makers
- Listings of tools for rent
- Direct messages and user reviews
- Uploaded tool manuals
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'addresses',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'line_one', 'type': 'TEXT', 'nullable': False},
                {'name': 'line_two', 'type': 'TEXT'},
                {'name': 'city', 'type': 'TEXT', 'nullable': False},
                {'name': 'state', 'type': 'TEXT', 'nullable': False},
                {'name': 'zip_code', 'type': 'TEXT', 'nullable': False},
                {'name': 'geocoded_lat', 'type': 'DOUBLE PRECISION'},
                {'name': 'geocoded_lon', 'type': 'DOUBLE PRECISION'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'first_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'last_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'password_hash', 'type': 'TEXT'},
                {'name': 'active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'address_id', 'type': 'UUID'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['address_id'], 'references': 'addresses(id)'}
            ],
            'indexes': [
                {'name': 'idx_users_email', 'columns': ['lower(email)'], 'unique': True},
                {'name': 'idx_users_address', 'columns': ['address_id'], 'unique': True}
            ]
        },
        {
            'name': 'auth_sessions',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'token', 'type': 'TEXT', 'nullable': False},
                {'name': 'expires_at', 'type': 'TIMESTAMP', 'nullable': False},
                {'name': 'revoked', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'user_agent', 'type': 'TEXT'},
                {'name': 'ip_address', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'last_used_at', 'type': 'TIMESTAMP'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_sessions_user', 'columns': ['user_id']},
                {'name': 'idx_sessions_token', 'columns': ['token'], 'unique': True}
            ]
        },
        {
            'name': 'file_uploads',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'original_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'mime_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'size', 'type': 'INT8', 'nullable': False},
                {'name': 'path', 'type': 'TEXT', 'nullable': False},
                {'name': 'uploader_id', 'type': 'UUID', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['uploader_id'], 'references': 'users(id)'}
            ]
        },
        {
            'name': 'tool_categories',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'search_vector', 'type': 'TSVECTOR', 'generated': "to_tsvector('simple', coalesce(name, ''))"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_categories_search', 'columns': ['search_vector'], 'using': 'GIN'}
            ]
        },
        {
            'name': 'tool_makers',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'search_vector', 'type': 'TSVECTOR', 'generated': "to_tsvector('simple', coalesce(name, ''))"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'indexes': [
                {'name': 'idx_makers_search', 'columns': ['search_vector'], 'using': 'GIN'}
            ]
        },
        {
            'name': 'tools',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'owner_id', 'type': 'UUID', 'nullable': False},
                {'name': 'tool_category_id', 'type': 'UUID'},
                {'name': 'tool_maker_id', 'type': 'UUID'},
                {'name': 'manual_file_id', 'type': 'UUID'},
                {
                    'name': 'search_vector',
                    'type': 'TSVECTOR',
                    'generated': "to_tsvector('english', coalesce(name, '') || ' ' || coalesce(description, ''))"
                },
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['owner_id'], 'references': 'users(id)'},
                {'columns': ['tool_category_id'], 'references': 'tool_categories(id)'},
                {'columns': ['tool_maker_id'], 'references': 'tool_makers(id)'},
                {'columns': ['manual_file_id'], 'references': 'file_uploads(id)'}
            ],
            'indexes': [
                {'name': 'idx_tools_owner', 'columns': ['owner_id']},
                {'name': 'idx_tools_category', 'columns': ['tool_category_id']},
                {'name': 'idx_tools_search', 'columns': ['search_vector'], 'using': 'GIN'}
            ]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'price', 'type': 'DECIMAL', 'nullable': False},
                {'name': 'billing_interval', 'type': 'TEXT', 'nullable': False},
                {'name': 'max_billing_intervals', 'type': 'INT8'},
                {'name': 'tool_id', 'type': 'UUID', 'nullable': False},
                {'name': 'active', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['tool_id'], 'references': 'tools(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_listings_tool', 'columns': ['tool_id']},
                {'name': 'idx_listings_active', 'columns': ['tool_id'], 'where': 'active'}
            ]
        },
        {
            'name': 'user_messages',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'sender_id', 'type': 'UUID', 'nullable': False},
                {'name': 'recipient_id', 'type': 'UUID', 'nullable': False},
                {'name': 'content', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['sender_id'], 'references': 'users(id)'},
                {'columns': ['recipient_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_messages_sender', 'columns': ['sender_id', 'created_at']},
                {'name': 'idx_messages_recipient', 'columns': ['recipient_id', 'created_at']}
            ]
        },
        {
            'name': 'user_reviews',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'reviewer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'reviewee_id', 'type': 'UUID', 'nullable': False},
                {'name': 'content', 'type': 'TEXT'},
                {'name': 'ratings', 'type': 'INT8'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['reviewer_id'], 'references': 'users(id)'},
                {'columns': ['reviewee_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_reviews_reviewee', 'columns': ['reviewee_id']}
            ]
        }
    ]
}
