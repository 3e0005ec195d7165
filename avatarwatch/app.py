"""Server entry point: Flask in a werkzeug thread plus the background sync worker."""

import logging
import threading

from werkzeug.serving import make_server

from avatarwatch import config
from avatarwatch.server import app as flask_app, get_client, set_worker
from avatarwatch.watcher import SyncWorker

logger = logging.getLogger(__name__)


def _prepare_database():
    """Open the writer once so the schema exists before the first request."""
    from avatarwatch.db import get_writer

    conn = get_writer()
    count = conn.execute("SELECT COUNT(*) FROM sessions").fetchone()[0]
    logger.info("Database %s holds %d sessions", config.DB_PATH, count)


def launch(host: str = "127.0.0.1", port: int | None = None, sync: bool = True):
    """Serve the dashboard until interrupted."""
    port = config.SERVER_PORT if port is None else port
    _prepare_database()

    server = make_server(host, port, flask_app, threaded=True)
    server_thread = threading.Thread(
        target=server.serve_forever, daemon=True, name="flask-server"
    )
    server_thread.start()
    logger.info("Serving on http://%s:%d", host, port)

    worker = None
    if sync:
        client = get_client()
        if not client.is_configured:
            logger.warning("HEYGEN_API_KEY is not set; reconciliation passes will be skipped")
        worker = SyncWorker(client)
        set_worker(worker)
        worker.start()

    try:
        server_thread.join()
    except KeyboardInterrupt:
        pass
    finally:
        server.shutdown()
        if worker is not None:
            worker.stop()
