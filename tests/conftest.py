import threading

import pytest

from server import Config, create_server


@pytest.fixture
def responder():
    """Start a responder on an ephemeral port; yields a factory taking the message."""
    running = []

    def start(msg="Hello from Kode-Soul DevOps Tools!"):
        server = create_server(Config(port=0, msg=msg, host="127.0.0.1"))
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        running.append((server, thread))
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield start

    for server, thread in running:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
