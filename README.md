# mcpkit

Three small Model Context Protocol (MCP) servers that speak line-delimited
JSON-RPC over standard input and output, plus the pieces they are built
from. Point an MCP client at one of the commands below.

## Install

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

The package has no runtime dependencies outside the standard library.
`mcp-shell` needs `bash` on the path, and `podman` when used with
`--container`.

## mcp-hello

A minimal server with one tool, `hello`, which returns `Hello, world!`.
It always writes debug logging to standard error.

    mcp-hello

## mcp-edit

A file server bound to a workspace directory.

    mcp-edit [WORKSPACE_ROOT] [MOUNT_POINT] [--allow-modification] [--trace]

- `WORKSPACE_ROOT` defaults to the current directory.
- `MOUNT_POINT` is the path shown to clients in place of the real workspace
  location, in results and in error messages. It defaults to
  `/home/user/workspace`.
- `--allow-modification` turns on the `replace` and `create_file` tools,
  which are withdrawn otherwise.
- `--trace` writes debug logging to standard error.

Tools:

| Tool | Purpose |
| --- | --- |
| `list_directory` | List the direct children of a directory, folders first (marked `[DIR]`), then by name. Extra `ignore` globs are matched against entry names. |
| `read_file` | Read a UTF-8 text file, optionally from a line `offset` for `limit` lines; a header notes when lines were left out. Non-text PNG, JPEG, GIF, WebP, SVG, BMP and PDF files are returned as base64 image content; other binary files are reported as such. |
| `read_many_files` | Read every file matched by glob patterns (directories are walked, recursively by default) and join their contents under `===== path =====` headers. `include` and `exclude` globs are matched against workspace-relative paths; `node_modules`, `.git` and `target` directories are always excluded. |
| `glob` | Find files whose path relative to the search directory matches a glob, newest first. Case-insensitive unless `case_sensitive` is set. |
| `search_file_content` | Search files for a regular expression, line by line, optionally filtered by an `include` glob. |
| `replace` | Replace `old_string` with `new_string`, failing unless exactly `expected_replacements` (default 1) occurrences are found. |
| `create_file` | Create a new file, creating missing parent directories. Refuses to overwrite. |

Every path must resolve to a location inside the workspace. Paths that lead
outside it, including through symbolic links, are refused with the same
message, `path must be within the workspace`, whether or not the target
exists.

Directory walks skip hidden entries, honour `.ignore` files everywhere, and
honour `.gitignore` and `.git/info/exclude` inside a git repository.

## mcp-shell

Runs bash commands, either in a local shell or in a Podman container.

    mcp-shell --container NAME --workdir DIR [--trace]
    mcp-shell --unsafe-local-access --workdir DIR [--trace]

Exactly one of `--container` and `--unsafe-local-access` is required, and
`--workdir` is always required.

Tools:

- `run`: start `command` in a new `bash --noprofile --norc` shell, with
  optional `stdin` text and `workdir`, and wait up to ten seconds for it to
  finish. The reply is a JSON object with `stdout`, `stderr` and
  `exit_code` when present, and the flags `timed_out`, `output_truncated`
  and `additional_output` when set.
- `wait`: keep waiting for a command that timed out. Returns only the
  output produced since the last reply.
- `terminate`: send SIGTERM to the running command.

Only one command runs at a time. At most 10,000 bytes of combined stdout
and stderr are kept for each command; `additional_output` reports that more
was produced.

## Library use

    from mcpkit.replace import replace_in_content

    replace_in_content("foo bar baz", "bar", "qux", None)  # "foo qux baz"

- `mcpkit.hello.HelloServer()`, `mcpkit.edit.FsServer(workspace_root,
  mount_point)` and `mcpkit.shell.ShellServer(workdir, container=None,
  time_limit=10.0)` expose their tools as async methods; failures raise
  `mcpkit.protocol.McpError`.
- `mcpkit.protocol` holds the server core: `McpServer`, `ToolRouter`,
  `Tool`, `CallToolResult`, and `run_stdio(server)`, which serves any of
  the servers over standard input and output.
- `mcpkit.globmatch` provides `Glob`, `GlobSet` and `translate` for
  shell-style globs with `**` and `{a,b}` alternatives.
- `mcpkit.walk.walk(root, max_depth)` yields `WalkEntry` items for a
  directory tree with the ignore rules described above.

## Limits

The protocol core answers only `initialize`, `ping`, `tools/list` and
`tools/call`; it offers no resources, prompts or other MCP features, and
standard input and output is its only transport. Argument checking covers
unknown and missing argument names, not their types.