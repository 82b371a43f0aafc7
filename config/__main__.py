"""Command line interface for testing configuration loading"""
from . import settings_conf

SECRET_KEYS = {'jwt_secret', 'db_url'}


def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        if key in SECRET_KEYS and value:
            value = '********'
        print(f"{key}: {value}")


if __name__ == "__main__":
    main()
