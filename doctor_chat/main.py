import os
import logging
from pathlib import Path

import yaml
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from doctor_chat.api import session
from doctor_chat.services.gemini_service import GeminiSettings
from doctor_chat.services.location import static_locator

# -----------------------------------------------------------------------------
# Load environment variables
# -----------------------------------------------------------------------------
load_dotenv()

# -----------------------------------------------------------------------------
# Load configuration from YAML
# -----------------------------------------------------------------------------
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "config.yaml"
CONFIG_PATH = os.getenv("CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

def load_config(path: str = CONFIG_PATH):
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f)
            if not cfg:
                raise ValueError("Config file is empty or invalid.")
            return cfg
    except FileNotFoundError:
        logging.error(f"❌ Config not found at {path}")
        raise SystemExit(f"Config not found: {path}")
    except yaml.YAMLError as e:
        logging.error(f"❌ Error parsing {path}: {e}")
        raise SystemExit(f"Error parsing config: {e}")
    except Exception as e:
        logging.error(f"❌ Unexpected error loading config: {e}")
        raise SystemExit(f"Failed to load config: {e}")

config = load_config()

# -----------------------------------------------------------------------------
# Set up logging
# -----------------------------------------------------------------------------
log_cfg = config.get("logging", {})
handlers = []
if log_cfg.get("log_file"):
    handlers.append(logging.FileHandler(log_cfg["log_file"], encoding="utf-8"))
if log_cfg.get("use_stream_handler", True):
    handlers.append(logging.StreamHandler())
if not handlers:
    handlers.append(logging.StreamHandler())

logging.basicConfig(
    level=log_cfg.get("level", "INFO").upper(),
    format=log_cfg.get(
        "format",
        "%(asctime)s - %(levelname)s - %(module)s - %(message)s"
    ),
    handlers=handlers
)

# -----------------------------------------------------------------------------
# Model client and session wiring
# -----------------------------------------------------------------------------
session_cfg = config.get("session") or {}
session.configure(
    GeminiSettings.from_config(config.get("gemini")),
    locator=static_locator(session_cfg.get("location")),
)

# -----------------------------------------------------------------------------
# Initialize FastAPI
# -----------------------------------------------------------------------------
app_cfg = config.get("app", {})
app = FastAPI(
    title=app_cfg.get("name", "DoctorChat"),
    version=app_cfg.get("version", "0.1.0")
)

# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------
allowed_origins = os.getenv("ALLOWED_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------
app.include_router(
    session.router,
    tags=["Consultation Session"]
)

# -----------------------------------------------------------------------------
# Root
# -----------------------------------------------------------------------------
@app.get("/")
async def root():
    return {"message": f"Welcome to {app_cfg.get('name', 'the API')}!"}

# -----------------------------------------------------------------------------
# Startup log
# -----------------------------------------------------------------------------
logging.info(f"✅ {app_cfg.get('name', 'API')} is starting up!")
