from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()

DUPLICATE_KEY_POLICIES = ("last_wins", "report")


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    source_path: str
    target_path: str
    mapping_path: str
    report_dir: str
    parallel_reads: bool
    duplicate_key_policy: str
    schedule_hour_utc: int
    schedule_minute_utc: int


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def get_settings() -> Settings:
    policy = os.getenv("DUPLICATE_KEY_POLICY", "last_wins").strip().lower()
    if policy not in DUPLICATE_KEY_POLICIES:
        raise ValueError(f"DUPLICATE_KEY_POLICY must be one of {', '.join(DUPLICATE_KEY_POLICIES)}: {policy}")

    return Settings(
        app_name=os.getenv("APP_NAME", "recordmatch"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./recordmatch.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        source_path=os.getenv("SOURCE_PATH", "./data/source.csv"),
        target_path=os.getenv("TARGET_PATH", "./data/target.csv"),
        mapping_path=os.getenv("MAPPING_PATH", "./config/mapping.json"),
        report_dir=os.getenv("REPORT_DIR", "./reports"),
        parallel_reads=_env_flag("PARALLEL_READS", "true"),
        duplicate_key_policy=policy,
        schedule_hour_utc=int(os.getenv("SCHEDULE_HOUR_UTC", "2")),
        schedule_minute_utc=int(os.getenv("SCHEDULE_MINUTE_UTC", "0")),
    )
