"""
Configuration management for the scan grader.
"""
import os
import json
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
BASE_DIR = Path(__file__).parent.parent
PACKAGE_DIR = Path(__file__).parent
load_dotenv(BASE_DIR / '.env', override=True)

# User data directories
HOME_DIR = Path.home()
SCANGRADE_DATA_DIR = Path(os.getenv("SCANGRADE_DATA_DIR", str(HOME_DIR / ".scangrade_data")))
GRADE_HISTORY_DIR = SCANGRADE_DATA_DIR / "grade_history"
AUDIT_LOG_FILE = SCANGRADE_DATA_DIR / "audit.log"
SETTINGS_FILE = SCANGRADE_DATA_DIR / "settings.json"

# API Configuration
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
SCAN_MODEL = os.getenv("SCAN_MODEL", "claude-sonnet-4-20250514")
REMEDIATION_PUSH_URL = os.getenv("REMEDIATION_PUSH_URL", "")
REMEDIATION_PUSH_KEY = os.getenv("REMEDIATION_PUSH_KEY", "")

# Server configuration
HOST = "0.0.0.0"
PORT = int(os.getenv("PORT", "3000"))
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Grading configuration
GRADE_FLOOR = int(os.getenv("GRADE_FLOOR", "55"))
GRADE_FLOOR_WITH_EFFORT = int(os.getenv("GRADE_FLOOR_WITH_EFFORT", "65"))
PASSING_GRADE = 60
PROFICIENT_GRADE = 80
MANUAL_ADJUSTMENT_RANGE = (-20, 20)


class Config:
    """Application configuration class."""

    def __init__(self):
        self.anthropic_api_key = ANTHROPIC_API_KEY
        self.scan_model = SCAN_MODEL
        self.remediation_push_url = REMEDIATION_PUSH_URL
        self.remediation_push_key = REMEDIATION_PUSH_KEY
        self.grade_floor = GRADE_FLOOR
        self.grade_floor_with_effort = GRADE_FLOOR_WITH_EFFORT
        self.grade_history_dir = str(GRADE_HISTORY_DIR)
        self.settings_file = str(SETTINGS_FILE)

    def to_dict(self):
        return {
            "scan_model": self.scan_model,
            "remediation_push_url": self.remediation_push_url,
            "grade_floor": self.grade_floor,
            "grade_floor_with_effort": self.grade_floor_with_effort,
            "grade_history_dir": self.grade_history_dir,
            "settings_file": self.settings_file,
        }


# Global config instance
config = Config()


class SettingsFloorProvider:
    """Grade-floor policy provider backed by the saved settings file.

    The settings file may hold ``grade_floor`` and ``grade_floor_with_effort``;
    anything missing falls back to the configured defaults.
    """

    def __init__(self, settings_file=None, cfg=None):
        self.cfg = cfg or config
        self.settings_file = settings_file or self.cfg.settings_file

    def _load_settings(self) -> dict:
        if not os.path.exists(self.settings_file):
            return {}
        with open(self.settings_file, 'r') as f:
            return json.load(f)

    def get_floors(self):
        from .services.grade_resolution import FloorPolicy

        settings = self._load_settings()
        return FloorPolicy(
            no_evidence_floor=settings.get("grade_floor", self.cfg.grade_floor),
            effort_floor=settings.get("grade_floor_with_effort", self.cfg.grade_floor_with_effort),
        )

    def save_floors(self, no_evidence_floor, effort_floor):
        settings = self._load_settings()
        settings["grade_floor"] = no_evidence_floor
        settings["grade_floor_with_effort"] = effort_floor
        os.makedirs(os.path.dirname(self.settings_file), exist_ok=True)
        with open(self.settings_file, 'w') as f:
            json.dump(settings, f, indent=2)
