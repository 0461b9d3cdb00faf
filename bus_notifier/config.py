"""Service configuration loaded from the environment."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List

from dotenv import load_dotenv

DEFAULT_DATAMALL_URL = "https://datamall2.mytransport.sg/ltaodataservice/v3/BusArrival"
DEFAULT_ROUTE_GUIDE_URL = (
    "https://www.transitlink.com.sg/eservice/eguide/service_route.php?service={service}"
)


@dataclass
class Settings:
    """Service settings"""

    debug: bool = False
    log_level: str = "INFO"

    # Telegram
    telegram_bot_token: Optional[str] = None
    telegram_allowed_users: List[str] = field(default_factory=list)

    # LTA DataMall
    datamall_account_key: Optional[str] = None
    datamall_url: str = DEFAULT_DATAMALL_URL
    fetch_timeout_seconds: float = 10.0

    # Storage
    data_dir: Path = field(default_factory=lambda: Path.home() / ".bus-notifier")
    jobs_db_file: str = "job.db"
    states_db_file: str = "user_state.db"

    # Reference data
    refdata_path: Path = field(default_factory=lambda: Path("refdata.yaml"))
    route_guide_url: str = DEFAULT_ROUTE_GUIDE_URL

    # Local wall clock used for weekdays and trigger times
    timezone: str = "Asia/Singapore"

    @property
    def jobs_db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.jobs_db_file

    @property
    def states_db_path(self) -> Path:
        return Path(self.data_dir).expanduser() / self.states_db_file

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables (and a .env file if present)."""
        load_dotenv(override=True)

        debug = os.getenv("DEBUG", "").lower() in ("1", "true")

        return cls(
            debug=debug,
            log_level=os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO").upper(),

            # Telegram
            telegram_bot_token=os.getenv("TELEGRAM_API_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN"),
            telegram_allowed_users=[
                u.strip() for u in os.getenv("TELEGRAM_ALLOWED_USERS", "").split(",") if u.strip()
            ],

            # DataMall
            datamall_account_key=os.getenv("LTA_API_TOKEN"),
            datamall_url=os.getenv("DATAMALL_URL", DEFAULT_DATAMALL_URL),
            fetch_timeout_seconds=float(os.getenv("FETCH_TIMEOUT_SECONDS", "10")),

            # Storage
            data_dir=Path(os.getenv(
                "BUS_NOTIFIER_DATA_DIR", str(Path.home() / ".bus-notifier")
            )),
            jobs_db_file=os.getenv("JOBS_DB_FILE", "job.db"),
            states_db_file=os.getenv("STATES_DB_FILE", "user_state.db"),

            # Reference data
            refdata_path=Path(os.getenv("REFDATA_PATH", "refdata.yaml")),
            route_guide_url=os.getenv("ROUTE_GUIDE_URL", DEFAULT_ROUTE_GUIDE_URL),

            timezone=os.getenv("TZ_NAME", "Asia/Singapore"),
        )
