"""Utility that launches a sample PostgreSQL Docker container for ingestdb."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ingestdb.config import config_path

DEFAULT_CONTAINER = "ingestdb-sample-db"
DEFAULT_PORT = 5543
DEFAULT_PASSWORD = "ingestdb"
DEFAULT_DB = "lega"
DEFAULT_USER = "lega_in"
DEFAULT_SCHEMA_VERSION = 4
DOCKER_IMAGE = "postgres:16-alpine"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"POSTGRES_PASSWORD={password}",
                "-e",
                f"POSTGRES_DB={database}",
                "-e",
                f"POSTGRES_USER={user}",
                "-p",
                f"{port}:5432",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, user)


def wait_for_start(name: str, user: str, retries: int = 15, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(["docker", "exec", name, "pg_isready", "-U", user], text=True)
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def seed_schema(name: str, database: str, user: str, version: int) -> None:
    sql = f"""
    CREATE SCHEMA IF NOT EXISTS local_ega;
    CREATE TABLE IF NOT EXISTS local_ega.dbschema_version (
        version INTEGER PRIMARY KEY,
        applied TIMESTAMPTZ DEFAULT now(),
        description TEXT
    );
    INSERT INTO local_ega.dbschema_version (version, description)
    SELECT v, 'sample schema' FROM generate_series(1, {version}) AS v
    ON CONFLICT DO NOTHING;

    CREATE SCHEMA IF NOT EXISTS sda;
    CREATE TABLE IF NOT EXISTS sda.files (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        submission_file_path TEXT NOT NULL,
        submission_user TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        last_modified TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (submission_file_path, submission_user)
    );
    CREATE TABLE IF NOT EXISTS sda.file_event_log (
        id SERIAL PRIMARY KEY,
        file_id UUID REFERENCES sda.files(id),
        event TEXT NOT NULL,
        user_id TEXT,
        message JSONB,
        started_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    CREATE OR REPLACE FUNCTION sda.register_file(upload_path TEXT, upload_user TEXT)
    RETURNS TEXT AS $register_file$
    DECLARE
        file_uuid UUID;
    BEGIN
        INSERT INTO sda.files (submission_file_path, submission_user)
        VALUES (upload_path, upload_user)
        ON CONFLICT ON CONSTRAINT files_submission_file_path_submission_user_key
        DO UPDATE SET last_modified = now()
        RETURNING id INTO file_uuid;

        INSERT INTO sda.file_event_log (file_id, event, user_id)
        VALUES (file_uuid, 'registered', upload_user);

        RETURN file_uuid;
    END;
    $register_file$ LANGUAGE plpgsql;
    """.strip()

    run(
        ["docker", "exec", "-i", name, "psql", "-U", user, "-d", database, "-v", "ON_ERROR_STOP=1"],
        input=sql,
    )


def write_config(port: int, user: str, database: str, password: str) -> None:
    target = config_path()
    if target.exists():
        print(f"Config file {target} already present; leaving as-is.")
        return
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        "\n".join(
            [
                'backend = "postgres"',
                "",
                "[database]",
                'host = "localhost"',
                f"port = {port}",
                f'user = "{user}"',
                f'password = "{password}"',
                f'database = "{database}"',
                'sslmode = "disable"',
                "",
                "[retry]",
                "connect_timeout = 60",
                "fast_connect_timeout = 30",
                "fast_connect_rate = 1",
                "slow_connect_rate = 5",
            ]
        )
        + "\n"
    )
    print(f"Wrote sample database settings to {target}.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument(
        "--schema-version",
        type=int,
        default=DEFAULT_SCHEMA_VERSION,
        help="Highest version to record in local_ega.dbschema_version",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
        seed_schema(args.container, args.database, args.user, args.schema_version)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    write_config(args.port, args.user, args.database, args.password)
    print(
        "Sample database is ready. Check it with `python -m ingestdb` or use "
        f"host=localhost port={args.port} user={args.user} dbname={args.database} sslmode=disable"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
