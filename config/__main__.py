"""Command line interface for testing configuration loading"""
from . import settings_conf
from .lib.load_settings_conf import DEFAULTS
from pathlib import Path

SECRET_KEYS = {'jwt_secret', 'db_url'}

def main():
    """Display loaded configuration"""
    print("\nSettings Configuration:")
    print("-" * 50)
    for key, value in settings_conf.items():
        if key in SECRET_KEYS and value:
            value = '********'
        print(f"{key}: {value}")

    # Save example configuration file
    examples_dir = Path("examples")
    examples_dir.mkdir(exist_ok=True)

    with open(examples_dir / "settings.conf.example", "w") as f:
        f.write("[DEFAULT]\n")
        for key, value in DEFAULTS.items():
            f.write(f"{key} = {value}\n")

    print(f"\nExample configuration written to {examples_dir / 'settings.conf.example'}")

if __name__ == "__main__":
    main()
