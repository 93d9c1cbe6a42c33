"""
FileDepot Configuration

We read configuration from 2 sources, in order of precedence (higher is more priority)
- Environment variables
- A .env file, either in the current working directory or in a location specified
  by the FILEDEPOT_ENV_FILE environment variable
"""

import functools
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "filedepot_"


class Backend(str, Enum):
    #: Elasticsearch for metadata, Redis for sessions and the job queue
    elastic = "elastic"

    #: Everything in process memory. Only useful for development and testing,
    #: thumbnails are generated by workers inside the API process.
    memory = "memory"


class Settings(BaseSettings):
    env_file: Annotated[
        Path,
        Field(
            description="Location of a .env file (if used) relative to working directory",
        ),
    ] = Path(".env")

    backend: Annotated[Backend, Field(description="Which storage backends to use")] = Backend.elastic

    elastic_password: Annotated[
        str | None,
        Field(
            description=(
                "Elasticsearch password. This the password for the 'elastic' user when Elastic xpack security is enabled"
            )
        ),
    ] = None

    elastic_host: Annotated[
        str | None,
        Field(
            description=(
                "Elasticsearch host. "
                "Default: https://localhost:9200 if elastic_password is set, http://localhost:9200 otherwise"
            )
        ),
    ] = None

    elastic_verify_ssl: Annotated[
        bool | None,
        Field(
            description=(
                "Elasticsearch verify SSL (only used if elastic_password is set). Default: True unless host is localhost)"
            ),
        ),
    ] = None

    index_prefix: Annotated[
        str,
        Field(
            description="Prefix for the Elasticsearch indices that hold users and files",
        ),
    ] = "filedepot"

    redis_url: Annotated[str, Field(description="Redis server used for sessions and the thumbnail queue")] = (
        "redis://localhost:6379/0"
    )

    folder_path: Annotated[
        Path,
        Field(description="Directory where file contents and thumbnails are stored"),
    ] = Path("/tmp/files_manager")

    session_ttl: Annotated[int, Field(description="Lifetime of a login token in seconds", gt=0)] = 24 * 60 * 60

    page_size: Annotated[int, Field(description="Number of files per page when listing", gt=0)] = 20

    queue_name: Annotated[str, Field(description="Name of the thumbnail job queue")] = "fileQueue"

    thumbnail_workers: Annotated[
        int,
        Field(
            description=(
                "Number of thumbnail workers to start inside the API process. "
                "Use 0 if thumbnails are generated by a separate `python -m filedepot worker` process"
            ),
            ge=0,
        ),
    ] = 0

    connect_retries: Annotated[int, Field(description="How often to retry connecting to a backend", ge=0)] = 3

    connect_backoff: Annotated[
        float, Field(description="Initial wait in seconds between connection attempts (doubles per attempt)", ge=0)
    ] = 0.5

    @model_validator(mode="after")
    def set_ssl(self: Any) -> "Settings":
        if not self.elastic_host:
            self.elastic_host = ("https" if self.elastic_password else "http") + "://localhost:9200"
        if self.elastic_verify_ssl is None:
            self.elastic_verify_ssl = self.elastic_host not in {
                "http://localhost:9200",
                "https://localhost:9200",
            }
        return self

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX)


@functools.lru_cache()
def get_settings() -> Settings:
    # Settings() alone does not pick up the .env file location from the environment,
    # so read it once to find the env_file and load it before the real parse
    temp = Settings()
    load_dotenv(temp.env_file, override=False)
    return Settings()


if __name__ == "__main__":
    # Echo the settings
    for k, v in get_settings().model_dump().items():
        print(f"{ENV_PREFIX.upper()}{k.upper()}={v}")
