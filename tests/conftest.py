import threading

import pytest
from werkzeug.serving import make_server

from tabmark import create_app
from tabmark.config import TestConfig
from tabmark.extensions import db


def _file_config(path):
    return type(
        "FileTestConfig", (TestConfig,), {"SQLALCHEMY_DATABASE_URI": f"sqlite:///{path}"}
    )


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def broker(app):
    return app.extensions["sync_broker"]


@pytest.fixture
def worker_pair(tmp_path):
    config = _file_config(tmp_path / "shared.db")
    return create_app(config), create_app(config)


@pytest.fixture
def live_server(tmp_path):
    app = create_app(_file_config(tmp_path / "live.db"))
    server = make_server("127.0.0.1", 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield app, f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    thread.join(timeout=5)
