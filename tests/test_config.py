import stat

import pytest

from codag.modules.core.config import (
    DEFAULT_SERVER,
    EnvFile,
    TokenStore,
    get_codag_home,
    resolve_server,
)
from codag.modules.core.errors import NotLoggedInError


def test_env_file_set_then_read_round_trips(tmp_path):
    env = EnvFile(tmp_path / ".env")
    env.set("CODAG_ACCESS_TOKEN", "abc")
    env.set("OTHER", "value=with=equals")

    assert env.read() == {"CODAG_ACCESS_TOKEN": "abc", "OTHER": "value=with=equals"}


def test_env_file_rewrite_leaves_other_keys_alone(tmp_path):
    path = tmp_path / ".env"
    path.write_text("# my settings\nFOO=1\nCODAG_ACCESS_TOKEN=old\nBAR=2\n")
    env = EnvFile(path)

    env.set("CODAG_ACCESS_TOKEN", "new")
    env.set("CODAG_ACCESS_TOKEN", "new")

    assert path.read_text() == "# my settings\nFOO=1\nCODAG_ACCESS_TOKEN=new\nBAR=2\n"


def test_env_file_ignores_comments_and_blank_lines(tmp_path):
    path = tmp_path / ".env"
    path.write_text("\n# CODAG_ACCESS_TOKEN=commented\n\n  KEY = spaced  \nnot a pair\n")

    assert EnvFile(path).read() == {"KEY": "spaced"}


def test_env_file_missing_reads_empty(tmp_path):
    assert EnvFile(tmp_path / "nope" / ".env").read() == {}


def test_env_file_is_private(tmp_path):
    env = EnvFile(tmp_path / "home" / ".env")
    env.set("CODAG_ACCESS_TOKEN", "abc")

    assert stat.S_IMODE(env.path.stat().st_mode) == 0o600


def test_env_file_remove(tmp_path):
    path = tmp_path / ".env"
    path.write_text("A=1\nCODAG_ACCESS_TOKEN=x\nCODAG_REFRESH_TOKEN=y\n")
    EnvFile(path).remove("CODAG_ACCESS_TOKEN", "CODAG_REFRESH_TOKEN")

    assert path.read_text() == "A=1\n"


def test_env_file_remove_missing_file_is_noop(tmp_path):
    env = EnvFile(tmp_path / ".env")
    env.remove("CODAG_ACCESS_TOKEN")
    assert not env.path.exists()


def test_load_into_never_overrides_environment(tmp_path):
    path = tmp_path / ".env"
    path.write_text("CODAG_ACCESS_TOKEN=from-file\nCODAG_URL=http://file\n")
    environ = {"CODAG_ACCESS_TOKEN": "from-env"}

    EnvFile(path).load_into(environ)

    assert environ == {"CODAG_ACCESS_TOKEN": "from-env", "CODAG_URL": "http://file"}


def test_token_store_load_reads_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text("CODAG_ACCESS_TOKEN=acc\nCODAG_REFRESH_TOKEN=ref\n")

    store = TokenStore.load(EnvFile(path), environ={})

    assert store.access_token == "acc"
    assert store.refresh_token == "ref"
    assert store.has_auth


def test_token_store_save_writes_both_tokens(tokens):
    tokens.save("acc", "ref")

    assert tokens.env_file.read() == {
        "CODAG_ACCESS_TOKEN": "acc",
        "CODAG_REFRESH_TOKEN": "ref",
    }
    assert (tokens.access_token, tokens.refresh_token) == ("acc", "ref")


def test_token_store_save_without_refresh_drops_stale_refresh(tokens):
    tokens.save("acc", "ref")
    tokens.save("acc2", None)

    assert tokens.env_file.read() == {"CODAG_ACCESS_TOKEN": "acc2"}
    assert tokens.refresh_token == ""


def test_token_store_clear(tokens):
    tokens.env_file.set("KEEP", "me")
    tokens.save("acc", "ref")
    tokens.clear()

    assert tokens.env_file.read() == {"KEEP": "me"}
    assert not tokens.has_auth


def test_require_auth_raises_when_logged_out(tokens):
    with pytest.raises(NotLoggedInError):
        tokens.require_auth()


def test_codag_home_from_env(tmp_path):
    assert get_codag_home({"CODAG_HOME": str(tmp_path)}) == tmp_path


def test_resolve_server_precedence():
    env = {"CODAG_SERVER_URL": "http://a/", "CODAG_URL": "http://b"}
    assert resolve_server("http://flag/", env) == "http://flag"
    assert resolve_server(None, env) == "http://a"
    assert resolve_server(None, {"CODAG_URL": "http://b"}) == "http://b"
    assert resolve_server(None, {}) == DEFAULT_SERVER
