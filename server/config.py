# server/config.py
# Build the Flask app: static assets from ./public at the URL root, HTML from ./views

from flask import Flask
from dotenv import load_dotenv
import os

if __package__ in (None, ""):  # top-level launch: gunicorn --chdir server app:app
    from schemas import ServerSettings
else:
    from .schemas import ServerSettings

load_dotenv()  # load .env for local dev

# --- Base paths -----------------------------------------------------------
BASE_DIR = os.path.abspath(os.path.dirname(__file__))
PUBLIC_DIR = os.path.join(BASE_DIR, "public")
VIEWS_DIR = os.path.join(BASE_DIR, "views")
# -------------------------------------------------------------------------

settings = ServerSettings.from_env()  # invalid PORT raises here, at startup

app = Flask(
    __name__,
    static_url_path="",  # serve assets at root, like express.static
    static_folder=PUBLIC_DIR,
    template_folder=VIEWS_DIR,
)

app.secret_key = os.getenv("FLASK_SECRET_KEY", "dev")
