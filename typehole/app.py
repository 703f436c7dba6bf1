"""
Typehole server: collects runtime samples and writes inferred types back into source.
"""

import logging
from pathlib import Path
from typing import Optional

from flask import Flask
from flask_cors import CORS

from typehole.config import log_event, PORT, WATCH_FILES, WORKSPACE_DIR
from typehole.routes import api
from typehole.services.queue_processor import EventQueue
from typehole.services.watcher import start_watcher
from typehole.workspace import Workspace


def create_app(workspace_dir: Optional[Path] = None, start_worker: bool = True, watch: Optional[bool] = None) -> Flask:
    """Build the app for one workspace. Holes are rebuilt from its sources on startup."""
    app = Flask(__name__)
    CORS(app)

    workspace = Workspace(Path(workspace_dir) if workspace_dir is not None else WORKSPACE_DIR)
    workspace.load()
    events = EventQueue(workspace)

    app.extensions["typehole.workspace"] = workspace
    app.extensions["typehole.events"] = events
    app.extensions["typehole.observer"] = None
    app.register_blueprint(api)

    if start_worker:
        events.start()
    if WATCH_FILES if watch is None else watch:
        app.extensions["typehole.observer"] = start_watcher(workspace.root, events)
    return app


def shutdown(app: Flask):
    observer = app.extensions.get("typehole.observer")
    if observer is not None:
        observer.stop()
        observer.join(timeout=5.0)
    app.extensions["typehole.events"].stop()


def main():
    app = create_app()
    workspace = app.extensions["typehole.workspace"]
    log_event(
        logging.INFO,
        "server_startup",
        workspace=str(workspace.root),
        holes=len(workspace.store.get_state().holes),
        watching=app.extensions["typehole.observer"] is not None,
        port=PORT,
    )

    print(f"""
    ╔═══════════════════════════════════════════════════╗
    ║                    TYPEHOLE                       ║
    ╠═══════════════════════════════════════════════════╣
    ║   Workspace:  {str(workspace.root)[-35:]:<35} ║
    ║   Listening:  http://localhost:{PORT:<19} ║
    ╚═══════════════════════════════════════════════════╝
    """)
    try:
        app.run(port=PORT, threaded=True)
    finally:
        shutdown(app)


if __name__ == '__main__':
    main()
