from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from urllib.parse import urljoin

import httpx

VERSION = "0.1.0"

BASE_URL = "https://www.divi.de"
ARCHIVE_PATH = "divi-intensivregister-tagesreport-archiv-csv"
TODAY_URL = "https://diviexchange.blob.core.windows.net/%24web/DIVI_Intensivregister_Auszug_pro_Landkreis.csv"


@dataclass(frozen=True)
class Config:
    base_url: str = BASE_URL
    archive_path: str = ARCHIVE_PATH
    today_url: str = TODAY_URL
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    timeout: float = 30.0
    user_agent: str = f"divi-sync/{VERSION}"
    log_level: str = "INFO"

    @property
    def archive_url(self) -> str:
        return urljoin(self.base_url.rstrip("/") + "/", self.archive_path.lstrip("/"))

    @classmethod
    def from_env(cls, **overrides) -> "Config":
        """
        Build a config from DIVI_* environment variables.
        Keyword overrides that are not None win over the environment.
        """
        cfg = cls(
            base_url=os.getenv("DIVI_BASE_URL", BASE_URL),
            archive_path=os.getenv("DIVI_ARCHIVE_PATH", ARCHIVE_PATH),
            today_url=os.getenv("DIVI_TODAY_URL", TODAY_URL),
            data_dir=Path(os.getenv("DIVI_DATA_DIR", "./data")),
            timeout=float(os.getenv("DIVI_TIMEOUT", "30")),
            user_agent=os.getenv("DIVI_USER_AGENT", f"divi-sync/{VERSION}"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if "data_dir" in overrides:
            overrides["data_dir"] = Path(overrides["data_dir"])
        return replace(cfg, **overrides)


def make_client(config: Config) -> httpx.Client:
    return httpx.Client(
        timeout=config.timeout,
        headers={"User-Agent": config.user_agent},
        follow_redirects=True,
    )
