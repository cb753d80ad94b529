# Check that the savviFinance tables exist and show their columns
from __future__ import annotations
import sys
import io
from pathlib import Path

sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import toml

from savvi_core.data.supabase_client import TABLES
from savvi_core.errors import classify_error, is_schema_missing


def load_credentials():
    """Prefer .streamlit/secrets.toml, fall back to the environment / .env"""
    secrets_path = project_root / ".streamlit" / "secrets.toml"
    if secrets_path.exists():
        secrets = toml.load(secrets_path)
        if "supabase" in secrets:
            return secrets["supabase"]["url"], secrets["supabase"]["key"]

    from savvi_core.config import load_config

    config = load_config()
    return config.resolved_url, config.resolved_key


def main():
    from supabase import create_client

    url, key = load_credentials()
    client = create_client(url, key)

    missing = []
    for table in TABLES:
        print(f"\n{'='*60}")
        print(f"Table: {table}")
        print(f"{'='*60}")
        try:
            # Fetch one row to see column structure
            response = client.table(table).select("*").limit(1).execute()
            if response.data:
                row = response.data[0]
                print("Columns:")
                for key, value in row.items():
                    print(f"  - {key}: {type(value).__name__} = {repr(value)[:50]}")
            else:
                print("  (no rows visible to the anon key)")
        except Exception as e:
            if is_schema_missing(e):
                missing.append(table)
                print("  MISSING")
            else:
                print(f"  Error: {classify_error(e)}")

    if missing:
        print(f"\nMissing tables: {', '.join(missing)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
