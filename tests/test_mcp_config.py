import json

from codag.modules.mcp.config_writer import (
    CREATED,
    UNCHANGED,
    UPDATED,
    codag_entry,
    remove_toml_section,
    toml_section,
    write_all,
    write_codex_toml,
    write_json_config,
    write_root_config,
)

URL = "https://api.codag.ai"


def read_json(path):
    return json.loads(path.read_text())


def test_creates_new_config(tmp_path):
    assert write_root_config(tmp_path, URL) == CREATED

    config = read_json(tmp_path / ".mcp.json")
    assert config == {"mcpServers": {"codag": codag_entry(URL)}}
    assert config["mcpServers"]["codag"]["args"] == ["mcp", "serve", "."]
    assert (tmp_path / ".mcp.json").read_text().endswith("\n")


def test_second_write_is_unchanged(tmp_path):
    write_root_config(tmp_path, URL)
    before = (tmp_path / ".mcp.json").read_text()

    assert write_root_config(tmp_path, URL) == UNCHANGED
    assert (tmp_path / ".mcp.json").read_text() == before


def test_unchanged_ignores_key_order(tmp_path):
    entry = codag_entry(URL)
    reordered = {"env": entry["env"], "args": entry["args"], "command": entry["command"]}
    (tmp_path / ".mcp.json").write_text(json.dumps({"mcpServers": {"codag": reordered}}))

    assert write_root_config(tmp_path, URL) == UNCHANGED


def test_updates_stale_entry(tmp_path):
    write_root_config(tmp_path, "http://old")

    assert write_root_config(tmp_path, URL) == UPDATED
    config = read_json(tmp_path / ".mcp.json")
    assert config["mcpServers"]["codag"]["env"]["CODAG_URL"] == URL


def test_merges_with_other_servers(tmp_path):
    (tmp_path / ".mcp.json").write_text(
        json.dumps({"mcpServers": {"other": {"command": "other-mcp"}}, "theme": "dark"})
    )

    assert write_root_config(tmp_path, URL) == UPDATED

    config = read_json(tmp_path / ".mcp.json")
    assert config["mcpServers"]["other"] == {"command": "other-mcp"}
    assert config["mcpServers"]["codag"] == codag_entry(URL)
    assert config["theme"] == "dark"


def test_malformed_file_is_backed_up(tmp_path):
    garbage = b"{not json,,"
    (tmp_path / ".mcp.json").write_bytes(garbage)

    assert write_root_config(tmp_path, URL) == CREATED

    assert (tmp_path / ".mcp.json.bak").read_bytes() == garbage
    assert read_json(tmp_path / ".mcp.json") == {"mcpServers": {"codag": codag_entry(URL)}}


def test_non_object_root_is_backed_up(tmp_path):
    (tmp_path / ".mcp.json").write_text("[1, 2, 3]")

    write_root_config(tmp_path, URL)

    assert (tmp_path / ".mcp.json.bak").read_text() == "[1, 2, 3]"
    assert "codag" in read_json(tmp_path / ".mcp.json")["mcpServers"]


def test_non_object_servers_key_is_replaced(tmp_path):
    path = tmp_path / "mcp.json"
    path.write_text(json.dumps({"servers": "nope", "keep": 1}))

    write_json_config(path, "servers", URL)

    config = read_json(path)
    assert config == {"servers": {"codag": codag_entry(URL)}, "keep": 1}


def test_write_all_only_root_by_default(tmp_path):
    results = write_all(tmp_path, URL)

    assert [r.path for r in results] == [".mcp.json"]
    assert results[0].ok
    assert not (tmp_path / ".vscode").exists()
    assert not (tmp_path / ".codex").exists()


def test_write_all_detects_editors(tmp_path):
    (tmp_path / ".vscode").mkdir()
    (tmp_path / ".codex").mkdir()

    results = write_all(tmp_path, URL)

    assert [r.path for r in results] == [".mcp.json", ".vscode/mcp.json", ".codex/config.toml"]
    assert all(r.ok and r.action == CREATED for r in results)
    assert read_json(tmp_path / ".vscode" / "mcp.json") == {"servers": {"codag": codag_entry(URL)}}
    assert (tmp_path / ".codex" / "config.toml").read_text() == toml_section(URL) + "\n"


def test_write_all_reports_failures_per_file(tmp_path):
    (tmp_path / ".vscode").mkdir()
    # A directory where the file should be makes the write fail
    (tmp_path / ".vscode" / "mcp.json").mkdir()

    results = write_all(tmp_path, URL)

    root, vscode = results
    assert root.ok
    assert not vscode.ok
    assert ".vscode/mcp.json" in vscode.error


def test_toml_section_format():
    assert toml_section("http://x") == (
        "[mcp_servers.codag]\n"
        'command = "codag"\n'
        'args = ["mcp", "serve", "."]\n'
        "\n"
        "[mcp_servers.codag.env]\n"
        'CODAG_URL = "http://x"'
    )


def test_codex_appends_to_existing_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('model = "o3"\n\n[mcp_servers.other]\ncommand = "other"\n')

    assert write_codex_toml(path, URL) == UPDATED

    content = path.read_text()
    assert content.startswith('model = "o3"\n\n[mcp_servers.other]\ncommand = "other"\n\n')
    assert content.endswith(toml_section(URL) + "\n")


def test_codex_unchanged(tmp_path):
    path = tmp_path / "config.toml"
    write_codex_toml(path, URL)

    assert write_codex_toml(path, URL) == UNCHANGED


def test_codex_replaces_stale_section(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        "[mcp_servers.codag]\n"
        'command = "old-codag"\n'
        "\n"
        "[mcp_servers.codag.env]\n"
        'CODAG_URL = "http://old"\n'
        "\n"
        "[mcp_servers.other]\n"
        'command = "other"\n'
    )

    assert write_codex_toml(path, URL) == UPDATED

    content = path.read_text()
    assert "old-codag" not in content
    assert "http://old" not in content
    assert '[mcp_servers.other]\ncommand = "other"' in content
    assert content.count("[mcp_servers.codag]") == 1


def test_remove_toml_section_keeps_neighbours():
    content = "a = 1\n[mcp_servers.codag]\nx = 1\n[mcp_servers.codag.env]\ny = 2\n[b]\nz = 3"

    assert remove_toml_section(content, "mcp_servers.codag") == "a = 1\n[b]\nz = 3"
