# Overview: Flask extension instances for database, migrations and the deferred invoice tail.

from __future__ import annotations

import atexit
from concurrent.futures import ThreadPoolExecutor

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


class DeferredTail:
    """
    Post-commit work runner for invoices.

    "thread" mode hands jobs to a small pool; each job pushes its own app
    context. "inline" mode runs the job immediately in the caller's context.
    """

    def __init__(self, app=None):
        self._executor = None
        self._app = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self._app = app
        app.extensions["deferred_tail"] = self
        atexit.register(self.shutdown)

    @property
    def mode(self) -> str:
        return self._app.config.get("DEFERRED_TAIL_MODE", "thread")

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            workers = int(self._app.config.get("DEFERRED_TAIL_WORKERS", 2))
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="invoice-tail")
        return self._executor

    def submit(self, func, *args, **kwargs):
        if self.mode == "inline":
            return func(*args, **kwargs)

        app = self._app

        def _run():
            with app.app_context():
                try:
                    return func(*args, **kwargs)
                finally:
                    db.session.remove()

        return self._pool().submit(_run)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


deferred_tail = DeferredTail()
