import base64
import os

import pytest

from mcpkit.edit import FsServer
from mcpkit.protocol import McpError


def _text(result, index=0):
    return result.content[index]["text"]


@pytest.fixture
def spaces(tmp_path):
    workspace = tmp_path / "ws"
    outside = tmp_path / "out"
    workspace.mkdir()
    outside.mkdir()
    return workspace, outside


@pytest.mark.asyncio
async def test_replace_single_occurrence(tmp_path):
    path = tmp_path / "tmpfile"
    path.write_text("hello world")
    server = FsServer(tmp_path)
    await server.replace(str(path), "world", "there", None)
    assert path.read_text() == "hello there"


@pytest.mark.asyncio
async def test_replace_wrong_count_reports_invalid_params(tmp_path):
    path = tmp_path / "f.txt"
    path.write_text("x x")
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.replace("f.txt", "x", "y", 3)
    assert info.value.message == "expected to replace 3 occurrence(s), but found 2"
    assert path.read_text() == "x x"


@pytest.mark.asyncio
async def test_list_directory_lists_entries(tmp_path):
    (tmp_path / "sub").mkdir()
    (tmp_path / "file.txt").write_text("abc")
    server = FsServer(tmp_path)
    text = _text(await server.list_directory(str(tmp_path), None))
    assert "[DIR] sub" in text
    assert "file.txt" in text


@pytest.mark.asyncio
async def test_list_directory_puts_directories_first(tmp_path):
    (tmp_path / "zdir").mkdir()
    (tmp_path / "a.txt").write_text("")
    server = FsServer(tmp_path)
    text = _text(await server.list_directory(".", None))
    lines = text.splitlines()[1:]
    assert lines == ["[DIR] zdir", "a.txt"]


@pytest.mark.asyncio
async def test_list_directory_applies_ignore_patterns(tmp_path):
    (tmp_path / "keep.txt").write_text("")
    (tmp_path / "drop.log").write_text("")
    server = FsServer(tmp_path)
    text = _text(await server.list_directory(".", ["*.log", "[bad"]))
    assert "keep.txt" in text
    assert "drop.log" not in text


@pytest.mark.asyncio
async def test_list_directory_respects_git_ignore(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".gitignore").write_text("ignored.txt\n")
    (tmp_path / "ignored.txt").write_text("hi")
    (tmp_path / "visible.txt").write_text("hi")
    server = FsServer(tmp_path)
    text = _text(await server.list_directory(str(tmp_path), None))
    assert "visible.txt" in text
    assert "ignored.txt" not in text


@pytest.mark.asyncio
async def test_read_file_reads_content(tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("first\nsecond\nthird")
    server = FsServer(tmp_path)
    text = _text(await server.read_file(str(path), 1, 1))
    assert "second" in text
    assert text == "[File content truncated: showing lines 2-2 of 3 total lines...]\nsecond"


@pytest.mark.asyncio
async def test_read_file_offset_past_end_is_empty(tmp_path):
    (tmp_path / "a.txt").write_text("one\ntwo\n")
    server = FsServer(tmp_path)
    assert _text(await server.read_file("a.txt", 2, None)) == ""
    assert _text(await server.read_file("a.txt", 0, None)) == "one\ntwo"


@pytest.mark.asyncio
async def test_read_file_supports_relative_paths(tmp_path):
    (tmp_path / "a.txt").write_text("hello")
    server = FsServer(tmp_path)
    text = _text(await server.read_file("a.txt", None, None))
    assert "hello" in text


@pytest.mark.asyncio
async def test_read_file_returns_image_for_binary_png(tmp_path):
    data = b"\x89PNG\r\n\x1a\n\xff\xfe"
    (tmp_path / "pic.PNG").write_bytes(data)
    server = FsServer(tmp_path)
    item = (await server.read_file("pic.PNG")).content[0]
    assert item["type"] == "image"
    assert item["mimeType"] == "image/png"
    assert base64.b64decode(item["data"]) == data


@pytest.mark.asyncio
async def test_read_file_binary_without_known_type(tmp_path):
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00")
    server = FsServer(tmp_path)
    text = _text(await server.read_file("blob.bin"))
    assert text == "Cannot display content of binary file: /home/user/workspace/blob.bin"


@pytest.mark.asyncio
async def test_read_many_files_reads_multiple(tmp_path):
    (tmp_path / "a.txt").write_text("hello")
    (tmp_path / "b.txt").write_text("world")
    server = FsServer(tmp_path)
    result = await server.read_many_files([f"{tmp_path}/**/*.txt"], None, None, True)
    text = _text(result)
    assert "hello" in text
    assert "world" in text
    assert text.index("a.txt") < text.index("b.txt")


@pytest.mark.asyncio
async def test_read_many_files_applies_exclude_and_defaults(tmp_path):
    (tmp_path / "keep.txt").write_text("kept")
    (tmp_path / "skip.txt").write_text("skipped")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "dep.txt").write_text("dependency")
    server = FsServer(tmp_path)
    result = await server.read_many_files(["*.txt", "node_modules"], None, ["skip.txt"], True)
    text = _text(result)
    assert "===== /home/user/workspace/keep.txt =====\nkept\n\n" in text
    assert "skipped" not in text
    assert "dependency" not in text


@pytest.mark.asyncio
async def test_read_many_files_include_filter(tmp_path):
    (tmp_path / "a.md").write_text("markdown")
    (tmp_path / "b.txt").write_text("plain")
    server = FsServer(tmp_path)
    text = _text(await server.read_many_files(["."], ["*.md"], None, True))
    assert "markdown" in text
    assert "plain" not in text


@pytest.mark.asyncio
async def test_read_many_files_rejects_empty_paths(tmp_path):
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.read_many_files([])
    assert info.value.message == "paths must not be empty"


@pytest.mark.asyncio
async def test_create_file_writes_content(tmp_path):
    path = tmp_path / "new.txt"
    server = FsServer(tmp_path)
    result = await server.create_file(str(path), "hello")
    assert path.read_text() == "hello"
    assert _text(result) == "Created file: /home/user/workspace/new.txt"


@pytest.mark.asyncio
async def test_create_file_errors_if_exists(tmp_path):
    path = tmp_path / "new.txt"
    path.write_text("hi")
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.create_file(str(path), "bye")
    assert "/home/user/workspace/new.txt" in info.value.message
    assert path.read_text() == "hi"


@pytest.mark.asyncio
async def test_glob_finds_files(tmp_path):
    (tmp_path / "a.rs").write_text("")
    (tmp_path / "b.txt").write_text("")
    server = FsServer(tmp_path)
    text = _text(await server.glob("*.rs", None, None))
    assert "a.rs" in text
    assert "b.txt" not in text


@pytest.mark.asyncio
async def test_glob_case_sensitivity(tmp_path):
    (tmp_path / "A.RS").write_text("")
    server = FsServer(tmp_path)
    assert "A.RS" in _text(await server.glob("*.rs"))
    assert "A.RS" not in _text(await server.glob("*.rs", None, True))


@pytest.mark.asyncio
async def test_glob_orders_newest_first(tmp_path):
    old = tmp_path / "old.rs"
    new = tmp_path / "new.rs"
    old.write_text("")
    new.write_text("")
    os.utime(old, (1000, 1000))
    os.utime(new, (2000, 2000))
    server = FsServer(tmp_path)
    text = _text(await server.glob("*.rs"))
    assert text.index("new.rs") < text.index("old.rs")
    assert text.startswith('Found 2 file(s) matching "*.rs" within ')


@pytest.mark.asyncio
async def test_glob_ignores_files_outside_workspace(spaces):
    workspace, outside = spaces
    outside_file = outside / "a.rs"
    outside_file.write_text("")
    os.symlink(outside_file, workspace / "link.rs")
    server = FsServer(workspace)
    text = _text(await server.glob("*.rs", None, None))
    assert "link.rs" not in text


@pytest.mark.asyncio
async def test_glob_respects_git_ignore(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".gitignore").write_text("ignored.rs\n")
    (tmp_path / "ignored.rs").write_text("")
    (tmp_path / "visible.rs").write_text("")
    server = FsServer(tmp_path)
    text = _text(await server.glob("*.rs", None, None))
    assert "visible.rs" in text
    assert "ignored.rs" not in text


@pytest.mark.asyncio
async def test_read_file_not_found_uses_mount_point(tmp_path):
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.read_file("missing.txt", None, None)
    assert "/home/user/workspace/missing.txt" in info.value.message
    assert str(tmp_path) not in info.value.message


@pytest.mark.asyncio
async def test_create_file_parent_missing_uses_mount_point(tmp_path):
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.create_file("subdir/new.txt", "hi")
    assert "/home/user/workspace/subdir" in info.value.message
    assert str(tmp_path) not in info.value.message


@pytest.mark.asyncio
async def test_list_directory_not_found_uses_mount_point(tmp_path):
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.list_directory("missing", None)
    assert "/home/user/workspace/missing" in info.value.message
    assert str(tmp_path) not in info.value.message


@pytest.mark.asyncio
async def test_create_file_path_is_directory(tmp_path):
    (tmp_path / "dir").mkdir()
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.create_file("dir", "hi")
    assert "/home/user/workspace/dir" in info.value.message
    assert str(tmp_path) not in info.value.message


@pytest.mark.asyncio
async def test_list_directory_path_is_file(tmp_path):
    (tmp_path / "f").write_text("hi")
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.list_directory("f", None)
    assert "/home/user/workspace/f" in info.value.message
    assert str(tmp_path) not in info.value.message


@pytest.mark.asyncio
async def test_list_directory_outside_workspace(spaces):
    workspace, outside = spaces
    server = FsServer(workspace)
    with pytest.raises(McpError) as info:
        await server.list_directory(str(outside), None)
    assert info.value.message == "path must be within the workspace"


@pytest.mark.asyncio
async def test_read_file_outside_workspace(spaces):
    workspace, outside = spaces
    server = FsServer(workspace)
    with pytest.raises(McpError) as info:
        await server.read_file(str(outside / "a.txt"), None, None)
    assert info.value.message == "path must be within the workspace"


@pytest.mark.asyncio
async def test_read_file_parent_traversal_is_rejected(spaces):
    workspace, outside = spaces
    (outside / "secret.txt").write_text("x")
    server = FsServer(workspace)
    with pytest.raises(McpError) as info:
        await server.read_file("../out/secret.txt")
    assert info.value.message == "path must be within the workspace"


@pytest.mark.asyncio
async def test_create_file_outside_workspace(spaces):
    workspace, outside = spaces
    server = FsServer(workspace)
    with pytest.raises(McpError) as info:
        await server.create_file(str(outside / "a.txt"), "hi")
    assert info.value.message == "path must be within the workspace"


@pytest.mark.asyncio
async def test_search_file_content_finds_matches(tmp_path):
    (tmp_path / "main.txt").write_text("foo\nbar")
    server = FsServer(tmp_path)
    text = _text(await server.search_file_content("bar", None, "*.txt"))
    assert "bar" in text
    assert "File: /home/user/workspace/main.txt\nL2: bar" in text


@pytest.mark.asyncio
async def test_search_file_content_no_matches(tmp_path):
    (tmp_path / "main.txt").write_text("foo")
    server = FsServer(tmp_path)
    text = _text(await server.search_file_content("zzz"))
    assert text.startswith('Found 0 match(es) for pattern "zzz" in path ')
    assert "---" not in text


@pytest.mark.asyncio
async def test_search_file_content_invalid_regex(tmp_path):
    server = FsServer(tmp_path)
    with pytest.raises(McpError) as info:
        await server.search_file_content("(")
    assert info.value.message.startswith("invalid regex:")


@pytest.mark.asyncio
async def test_search_file_content_respects_git_ignore(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".gitignore").write_text("ignored.txt\n")
    (tmp_path / "ignored.txt").write_text("foo")
    (tmp_path / "visible.txt").write_text("foo")
    server = FsServer(tmp_path)
    text = _text(await server.search_file_content("foo", None, "*.txt"))
    assert "visible.txt" in text
    assert "ignored.txt" not in text


@pytest.mark.asyncio
async def test_search_file_content_ignores_files_outside_workspace(spaces):
    workspace, outside = spaces
    outside_file = outside / "a.txt"
    outside_file.write_text("foo")
    os.symlink(outside_file, workspace / "link.txt")
    server = FsServer(workspace)
    text = _text(await server.search_file_content("foo", None, "*.txt"))
    assert "link.txt" not in text


@pytest.mark.asyncio
async def test_read_file_outside_workspace_masks_existence(spaces):
    workspace, outside = spaces
    existing = outside / "exists.txt"
    existing.write_text("hello")
    missing = outside / "missing.txt"
    server = FsServer(workspace)
    with pytest.raises(McpError) as first:
        await server.read_file(str(existing), None, None)
    with pytest.raises(McpError) as second:
        await server.read_file(str(missing), None, None)
    assert first.value.message == second.value.message
    assert first.value.message == "path must be within the workspace"


@pytest.mark.asyncio
async def test_create_file_outside_workspace_masks_existence(spaces):
    workspace, outside = spaces
    existing = outside / "exists.txt"
    existing.write_text("old")
    missing = outside / "missing.txt"
    server = FsServer(workspace)
    with pytest.raises(McpError) as first:
        await server.create_file(str(existing), "new")
    with pytest.raises(McpError) as second:
        await server.create_file(str(missing), "new")
    assert first.value.message == second.value.message
    assert first.value.message == "path must be within the workspace"
    assert existing.read_text() == "old"


def test_disable_modification_tools_removes_routes(tmp_path):
    server = FsServer(tmp_path)
    assert server.tool_router.has_route("replace")
    assert server.tool_router.has_route("create_file")
    server.disable_modification_tools()
    assert not server.tool_router.has_route("replace")
    assert not server.tool_router.has_route("create_file")
    assert server.tool_router.has_route("read_file")


def test_display_path_maps_into_mount_point(tmp_path):
    server = FsServer(tmp_path, "/mnt/ws")
    assert server.display_path(tmp_path.resolve() / "a" / "b.txt") == "/mnt/ws/a/b.txt"
    assert server.display_path("/elsewhere/x") == "/elsewhere/x"


@pytest.mark.asyncio
async def test_tool_call_through_router(tmp_path):
    (tmp_path / "a.txt").write_text("routed")
    server = FsServer(tmp_path)
    result = await server.tool_router.call("read_file", {"path": "a.txt"})
    assert _text(result) == "routed"