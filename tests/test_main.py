import pytest

from conduit import main as cli
from conduit.config import Config

from conftest import EchoServer, FakeTransportFactory


@pytest.fixture
def fake_server(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "setup_logging", lambda **kwargs: None)

    server = EchoServer({
        "ping": {"data": "pong"},
        "fs.stat": {"err": {"message": "not found"}},
        "fs.read": {"data": "ignored"},
        "fs.write": lambda message: {"data": {"id": message.options["id"]}},
    })
    factory = FakeTransportFactory(server=server)
    monkeypatch.setattr("conduit.client.WebSocketTransport", factory)
    return server, factory


def test_parse_options():
    assert cli.parse_options(["a=1", "expr=x=y", "empty="]) == {"a": "1", "expr": "x=y", "empty": ""}
    assert cli.parse_options(None) == {}


def test_parse_options_rejects_missing_equals():
    with pytest.raises(ValueError):
        cli.parse_options(["novalue"])


def test_apply_overrides():
    args = cli.build_parser().parse_args([
        "--origin", "ws://example.com:9000", "--key", "k", "--id", "5", "-v",
        "call", "fs.stat", "--timeout", "3",
    ])

    config = cli.apply_overrides(Config(), args)

    assert config.connection.origin == "ws://example.com:9000"
    assert config.connection.key == "k"
    assert config.connection.id == 5
    assert config.protocol.call_timeout == 3.0
    assert config.logging.level == "DEBUG"


def test_call_prints_json_result(fake_server, capsys):
    _, factory = fake_server

    assert cli.main(["--key", "k", "--id", "9", "call", "ping"]) == 0

    assert capsys.readouterr().out.strip() == '"pong"'
    assert factory.last.url == "ws://localhost:8080/9/0?key=k"
    assert factory.last.close_requested


def test_http_origin_connects_over_websocket(fake_server, capsys):
    _, factory = fake_server

    assert cli.main(["--origin", "https://example.com", "--key", "k", "--id", "9", "call", "ping"]) == 0

    assert factory.last.url == "wss://example.com/9/0?key=k"


def test_call_uploads_payload_file(fake_server, tmp_path, capsys):
    server, _ = fake_server
    data = tmp_path / "data.bin"
    data.write_bytes(b"z" * 1500)

    code = cli.main(["call", "fs.write", "-o", "id=7", "--payload-file", str(data)])

    assert code == 0
    assert server.chunks == [b"z" * 1024, b"z" * 476]
    assert '"id": "7"' in capsys.readouterr().out


def test_call_arraybuffer_writes_raw_bytes(fake_server, capsysbinary):
    assert cli.main(["call", "fs.read", "--type", "arraybuffer"]) == 0
    assert capsysbinary.readouterr().out == b'{"data": "ignored"}'


def test_remote_error_exits_nonzero(fake_server, capsys):
    assert cli.main(["call", "fs.stat", "-o", "path=/nope"]) == 1
    assert "not found" in capsys.readouterr().err


def test_send_is_one_way(fake_server):
    _, factory = fake_server

    assert cli.main(["send", "-o", "route=log", "-o", "level=info"]) == 0

    [sent] = factory.last.sent_messages
    assert sent.options == {"route": "log", "level": "info"}


def test_bad_option_reports_error(fake_server, capsys):
    assert cli.main(["call", "ping", "-o", "broken"]) == 1
    assert "key=value" in capsys.readouterr().err
