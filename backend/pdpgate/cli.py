"""CLI for running the gateway, managing the schema and talking to pdptool directly."""
import argparse
import asyncio
import os
import sys
from pathlib import Path

from pdpgate.core.config import get_settings
from pdpgate.core.errors import PDPError
from pdpgate.core.logging_config import LoggingConfig

BACKEND_DIR = Path(__file__).resolve().parents[1]

logger = LoggingConfig.get_logger(__name__)


def cmd_serve(args):
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "pdpgate.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        reload=args.reload,
    )
    return 0


def cmd_migrate(args):
    """Run alembic upgrade to the given revision."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(str(args.config))
    alembic_cfg.set_main_option("script_location", str(Path(args.config).resolve().parent / "alembic"))
    print(f"Applying migrations up to {args.revision}")
    command.upgrade(alembic_cfg, args.revision)
    return 0


def cmd_init_db(args):
    """Create missing tables straight from the models."""
    from pdpgate.core.database import create_tables

    create_tables()
    print("Tables created")
    return 0


def _retry_policy(args):
    from pdpgate.core.retry import RetryPolicy

    return RetryPolicy.fixed(max_attempts=args.attempts, seconds=args.delay)


async def _ping(args):
    from pdpgate.core.retry import always_transient, with_retry
    from pdpgate.services.pdp_backend import get_pdp_backend

    backend = get_pdp_backend()
    return await with_retry(
        lambda: backend.ping(args.service_url, args.service_name),
        _retry_policy(args),
        always_transient,
        name="ping",
    )


def cmd_ping(args):
    """Ping a PDP service, optionally waiting until it is reachable."""
    try:
        result = asyncio.run(_ping(args))
    except PDPError as e:
        print(e.error_text, file=sys.stderr)
        return 1
    print(result.text.strip())
    return 0


async def _upload(args):
    from pdpgate.core.retry import always_transient, with_retry
    from pdpgate.services.pdp_backend import get_pdp_backend
    from pdpgate.services.root_binder import RootBinder
    from pdpgate.services.upload_service import UploadService

    backend = get_pdp_backend()
    uploads = UploadService(backend)
    name = os.path.basename(args.path)

    async def attempt():
        with open(args.path, "rb") as stream:
            return await uploads.upload(stream, name, args.service_url, args.service_name)

    upload = await with_retry(attempt, _retry_policy(args), always_transient, name="upload-file")
    logger.info("Uploaded file", extra={"file_name": name, "root_cid": upload.root_cid})
    print(f"rootCID: {upload.root_cid}")
    if args.proof_set_id:
        bound = await RootBinder(backend).bind_root(
            args.proof_set_id, upload.root_cid, args.service_url, args.service_name
        )
        print(bound.text.strip())


def cmd_upload(args):
    """Upload one local file and optionally add it to a proof set."""
    if not os.path.isfile(args.path):
        print(f"No such file: {args.path}", file=sys.stderr)
        return 2
    try:
        asyncio.run(_upload(args))
    except PDPError as e:
        print(e.error_text, file=sys.stderr)
        return 1
    return 0


def _add_service_args(p):
    p.add_argument("--service-url", required=True, help="PDP service URL")
    p.add_argument("--service-name", required=True, help="PDP service name")
    p.add_argument("--attempts", type=int, default=1, help="Attempts before giving up")
    p.add_argument("--delay", type=float, default=60.0, help="Seconds between attempts")


def build_parser():
    p = argparse.ArgumentParser(prog="pdpgate")
    sub = p.add_subparsers(dest="cmd")

    s = sub.add_parser("serve", help="Run the HTTP API")
    s.add_argument("--host", default=None)
    s.add_argument("--port", type=int, default=None)
    s.add_argument("--reload", action="store_true")
    s.set_defaults(func=cmd_serve)

    s = sub.add_parser("migrate", help="Run migrations (upgrade head)")
    s.add_argument("--revision", "-r", default="head", help="Target revision")
    s.add_argument("--config", "-c", default=str(BACKEND_DIR / "alembic.ini"), help="Path to alembic.ini")
    s.set_defaults(func=cmd_migrate)

    s = sub.add_parser("init-db", help="Create tables from the models")
    s.set_defaults(func=cmd_init_db)

    s = sub.add_parser("ping", help="Ping a PDP service")
    _add_service_args(s)
    s.set_defaults(func=cmd_ping)

    s = sub.add_parser("upload", help="Upload a file with pdptool")
    s.add_argument("path", help="File to upload")
    s.add_argument("--proof-set-id", default=None, help="Add the root to this proof set")
    _add_service_args(s)
    s.set_defaults(func=cmd_upload)
    return p


def main(argv=None):
    p = build_parser()
    args = p.parse_args(argv)
    if not hasattr(args, "func"):
        p.print_help()
        return 2
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
