import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "postgresql://localhost:5432/vesitrail"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"connect_timeout": 5},
    }

    # Booklet settings
    BOOKLET_TOTAL_PAGES = 50
    BOOKLETS_PER_PAGE = 10
    ALLOCATION_MAX_ATTEMPTS = 3
    ALLOCATION_BACKOFF_SECONDS = 0.05

    # Release / update settings
    GITHUB_REPO_OWNER = os.environ.get("GITHUB_REPO_OWNER", "VESITRail")
    GITHUB_REPO_NAME = os.environ.get("GITHUB_REPO_NAME", "VESITRail")
    GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
    RELEASE_TIMEOUT_SECONDS = 5.0
    RELEASE_CACHE_SECONDS = 1800
    STARS_CACHE_SECONDS = 3600
    UPDATE_CHECK_INTERVAL_MINUTES = 30

    # Background jobs (booklet status reconciliation)
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "true").lower() != "false"
