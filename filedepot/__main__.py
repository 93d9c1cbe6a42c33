"""
FileDepot file storage server
"""

import argparse
import asyncio
import inspect
import logging
import os
import sys
from pathlib import Path

import uvicorn
from uvicorn.config import LOGGING_CONFIG

from filedepot.config import ENV_PREFIX, Backend, get_settings
from filedepot.connections import filedepot_connections
from filedepot.errors import FileDepotError
from filedepot.services import build_services
from filedepot.thumbnails.pipeline import ThumbnailWorkers


def run(args):
    settings = get_settings()
    logging.info(f"Starting server at port {args.port}, debug={not args.nodebug}, backend={settings.backend.value}")
    if settings.backend == Backend.memory:
        logging.warning("Warning: Using the memory backend - all users and files are lost when the server stops")
    logging.info(
        "To change server config, create an .env file and/or set environment parameters,\n"
        f"{' ' * 26}see filedepot/config.py for more information.\n"
        f"{' ' * 26}You can also run `python -m filedepot create-env` to create a starter .env file\n"
    )
    log_config = "logging.yml" if Path("logging.yml").exists() else LOGGING_CONFIG
    uvicorn.run(
        "filedepot.api:app", host="0.0.0.0", reload=not args.nodebug, port=int(args.port), log_config=log_config
    )


async def run_workers(args) -> None:
    settings = get_settings()
    if settings.backend == Backend.memory:
        logging.error("The memory backend has no shared queue, thumbnails are generated inside the API process")
        sys.exit(1)
    async with filedepot_connections(settings) as connections:
        services = await build_services(settings, connections)
        await services.queue.recover()
        workers = ThumbnailWorkers(services.thumbnails, args.workers)
        workers.start()
        try:
            await workers.wait()
        finally:
            await workers.stop()


async def add_user(args) -> None:
    settings = get_settings()
    if settings.backend == Backend.memory:
        logging.error("Users of the memory backend only exist inside the API process, register them with POST /users")
        sys.exit(1)
    async with filedepot_connections(settings) as connections:
        services = await build_services(settings, connections)
        try:
            user = await services.users.create(args.email, args.password)
        except FileDepotError as e:
            logging.error(f"Could not create user {args.email}: {e.message}")
            sys.exit(1)
        print(f"Created user {user.email} with id {user.id}")


def base_env():
    return dict(
        filedepot_backend=Backend.elastic.value,
        filedepot_elastic_host="http://localhost:9200",
        filedepot_redis_url="redis://localhost:6379/0",
        filedepot_folder_path="/tmp/files_manager",
    )


def create_env(args):
    if os.path.exists(".env"):
        print("*** File .env already exists, quitting ***")
        sys.exit(1)

    env = base_env()
    if args.folder_path:
        env["filedepot_folder_path"] = args.folder_path
    with open(".env", "w") as f:
        for key, val in env.items():
            f.write(f"{key}={val}\n")
    os.chmod(".env", 0o600)
    print("*** Created .env file ***")


def show_config(_args):
    settings = get_settings()
    for fieldname, fieldinfo in type(settings).model_fields.items():
        value = getattr(settings, fieldname)
        if isinstance(value, Backend):
            value = value.value
        if doc := fieldinfo.description:
            print(f"# {doc}")
        print(f"{ENV_PREFIX.upper()}{fieldname.upper()}={value}\n")


def main():
    parser = argparse.ArgumentParser(description=__doc__, prog="python -m filedepot")

    subparsers = parser.add_subparsers(dest="action", title="action", help="Action to perform:", required=True)
    p = subparsers.add_parser("run", help="Run the backend API in development mode")
    p.add_argument(
        "--no-debug",
        action="store_true",
        dest="nodebug",
        help="Disable debug mode (useful for testing downstream clients)",
    )
    p.add_argument("-p", "--port", help="Port", default=5000)
    p.set_defaults(func=run)

    p = subparsers.add_parser("worker", help="Run thumbnail workers until interrupted")
    p.add_argument("-n", "--workers", help="Number of concurrent workers", type=int, default=1)
    p.set_defaults(func=run_workers)

    p = subparsers.add_parser("create-env", help="Create a starter .env file")
    p.add_argument("-f", "--folder_path", help="Directory to store file contents in")
    p.set_defaults(func=create_env)

    p = subparsers.add_parser("add-user", help="Register a user")
    p.add_argument("email", help="The email address of the user.")
    p.add_argument("password", help="The password of the user.")
    p.set_defaults(func=add_user)

    p = subparsers.add_parser("config", help="Show the current settings")
    p.set_defaults(func=show_config)

    args = parser.parse_args()

    logging.basicConfig(format="[%(levelname)-7s:%(name)-15s] %(message)s", level=logging.INFO)
    es_logger = logging.getLogger("elasticsearch")
    es_logger.setLevel(logging.WARNING)

    if inspect.iscoroutinefunction(args.func):
        try:
            asyncio.run(args.func(args))
        except KeyboardInterrupt:
            logging.info("Interrupted, shutting down")
    else:
        args.func(args)


if __name__ == "__main__":
    main()
