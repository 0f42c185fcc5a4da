"""Language adapters.

An adapter knows everything language-specific about running a script: which
container image and interpreter to use, the runner program that loads the user
code inside the sandbox, how inputs are serialized onto the sandbox's stdin and
how the result is recovered from its stdout.

Sandbox protocol (shared by every adapter):

- stdin carries three lines of JSON: the code string, the input data and the
  script configuration, then EOF.
- The runner calls the user code with ``data`` and ``config`` and writes the
  returned value as one line ``__POLYSCRIPT_RESULT__{"output": <value>}``.
- Anything else the script prints is passed through as ordinary stdout.

The set of adapters is closed: :data:`ADAPTER_CLASSES` lists one class per
:class:`LanguageId`.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any

from ..exceptions import MalformedOutputError
from ..models import RESULT_SENTINEL, ExecutionRequest


class LanguageId(StrEnum):
    """Languages with a registered adapter."""

    PHP = "php"
    LUA = "lua"
    PYTHON = "python"
    JAVASCRIPT = "javascript"


# =============================================================================
# RUNNER PROGRAMS
# =============================================================================

_PYTHON_RUNNER = r"""
import ast, json, sys
_code = json.loads(sys.stdin.readline())
_data = json.loads(sys.stdin.readline() or "null")
_config = json.loads(sys.stdin.readline() or "null")
_module = ast.parse("def __script__(data, config):\n    pass\n")
_body = ast.parse(_code, "<script>").body
if _body:
    _module.body[0].body = _body
_namespace = {"__name__": "__script__"}
exec(compile(_module, "<script>", "exec"), _namespace)
_output = _namespace["__script__"](_data, _config)
sys.stdout.write("\n__POLYSCRIPT_RESULT__" + json.dumps({"output": _output}, default=str) + "\n")
sys.stdout.flush()
"""

_PHP_RUNNER = r"""
$in = fopen('php://stdin', 'r');
$code = json_decode(fgets($in), true);
$data = json_decode(fgets($in), true);
$config = json_decode(fgets($in), true);
$source = ltrim($code);
$source = strncmp($source, '<?php', 5) === 0 ? '?>' . $source : $source;
$run = function ($data, $config) use ($source) {
    return eval($source);
};
$output = $run($data, $config);
echo "\n__POLYSCRIPT_RESULT__" . json_encode(['output' => $output]) . "\n";
"""

_LUA_RUNNER = r"""
local cjson = require("cjson")
local code = cjson.decode(io.read("*l"))
local data = cjson.decode(io.read("*l") or "null")
local config = cjson.decode(io.read("*l") or "null")
local env = setmetatable({data = data, config = config}, {__index = _G})
local chunk, err
if setfenv then
  chunk, err = loadstring(code, "script")
  if chunk then setfenv(chunk, env) end
else
  chunk, err = load(code, "script", "t", env)
end
if not chunk then error(err, 0) end
local output = chunk(data, config)
if output == nil then output = cjson.null end
io.write("\n__POLYSCRIPT_RESULT__" .. cjson.encode({output = output}) .. "\n")
"""

_JAVASCRIPT_RUNNER = r"""
const lines = require("fs").readFileSync(0, "utf8").split("\n");
const code = JSON.parse(lines[0]);
const data = JSON.parse(lines[1] || "null");
const config = JSON.parse(lines[2] || "null");
const AsyncFunction = Object.getPrototypeOf(async function () {}).constructor;
new AsyncFunction("data", "config", code)(data, config).then(
  (output) => {
    const envelope = { output: output === undefined ? null : output };
    process.stdout.write("\n__POLYSCRIPT_RESULT__" + JSON.stringify(envelope) + "\n");
  },
  (err) => {
    process.stderr.write((err && err.stack ? err.stack : String(err)) + "\n");
    process.exitCode = 1;
  }
);
"""


# =============================================================================
# ADAPTERS
# =============================================================================


def _heap_megabytes(memory_bytes: int) -> int:
    """Heap budget for interpreters that enforce their own: three quarters of the ceiling."""
    return max(memory_bytes * 3 // 4 // 1024**2, 8)


class LanguageAdapter:
    """Base adapter. Subclasses mostly declare class attributes.

    :param image: Container image override
    :param interpreter: Interpreter binary override (path or name on PATH)
    """

    language: LanguageId
    display_name: str
    aliases: tuple[str, ...] = ()
    default_image: str
    default_interpreter: str
    eval_flag: str
    runner: str
    version_args: tuple[str, ...] = ("--version",)
    # Local sandboxes cap address space unless the runtime bounds its own heap
    caps_address_space: bool = True
    # Output fragments the interpreter prints when an allocation fails
    memory_error_markers: tuple[str, ...] = ()

    def __init__(self, image: str | None = None, interpreter: str | None = None):
        self.image = image or self.default_image
        self.interpreter = interpreter or self.default_interpreter

    def __repr__(self) -> str:
        return f"{type(self).__name__}(image={self.image!r}, interpreter={self.interpreter!r})"

    def command(self, interpreter: str | None = None, memory_bytes: int | None = None) -> list[str]:
        """Argument vector that starts the runner inside a sandbox."""
        return [
            interpreter or self.interpreter,
            *(self.memory_args(memory_bytes) if memory_bytes else []),
            self.eval_flag,
            self.runner.strip(),
        ]

    def memory_args(self, memory_bytes: int) -> list[str]:
        """Interpreter flags that bound its own heap below ``memory_bytes``."""
        return []

    def exhausted_memory(self, stderr: str, stdout: str = "") -> bool:
        """Whether the output shows the interpreter ran out of memory.

        PHP CLI prints fatal errors on stdout, so both streams are searched.
        """
        return any(
            marker in stderr or marker in stdout for marker in self.memory_error_markers
        )

    def encode_input(self, request: ExecutionRequest) -> bytes:
        """Serialize code, data and configuration as three JSON lines."""
        lines = [
            json.dumps(request.code),
            json.dumps(request.data, default=str),
            json.dumps(request.config, default=str),
        ]
        return ("\n".join(lines) + "\n").encode("utf-8")

    def parse_output(self, stdout: str) -> tuple[Any, str]:
        """Recover the script's response from sandbox stdout.

        Returns:
            Tuple of (response, remaining stdout without the result line)

        Raises:
            MalformedOutputError: If the result line is missing or not a valid envelope
        """
        lines = stdout.splitlines()
        for index in range(len(lines) - 1, -1, -1):
            if lines[index].startswith(RESULT_SENTINEL):
                payload = lines[index][len(RESULT_SENTINEL):]
                break
        else:
            raise MalformedOutputError(
                "Script finished without emitting a result", stdout=stdout, language=self.language
            )

        try:
            envelope = json.loads(payload)
        except ValueError as e:
            raise MalformedOutputError(
                f"Script result is not valid JSON: {e}", stdout=stdout, language=self.language
            ) from e

        if not isinstance(envelope, dict) or "output" not in envelope:
            raise MalformedOutputError(
                "Script result envelope has no 'output' field", stdout=stdout, language=self.language
            )

        remaining = "\n".join(lines[:index] + lines[index + 1:]).strip("\n")
        return envelope["output"], remaining

    def describe(self) -> dict[str, Any]:
        return {
            "language": self.language.value,
            "name": self.display_name,
            "aliases": list(self.aliases),
            "image": self.image,
            "interpreter": self.interpreter,
        }


class PhpAdapter(LanguageAdapter):
    language = LanguageId.PHP
    display_name = "PHP"
    default_image = "php:8.3-cli-alpine"
    default_interpreter = "php"
    eval_flag = "-r"
    runner = _PHP_RUNNER
    memory_error_markers = ("Allowed memory size of", "Out of memory")

    def memory_args(self, memory_bytes: int) -> list[str]:
        return ["-d", f"memory_limit={_heap_megabytes(memory_bytes)}M"]


class LuaAdapter(LanguageAdapter):
    """Lua 5.1-5.4. The image must provide the ``cjson`` module (lua-cjson)."""

    language = LanguageId.LUA
    display_name = "Lua"
    default_image = "nickblah/lua:5.4-luarocks-alpine"
    default_interpreter = "lua"
    eval_flag = "-e"
    runner = _LUA_RUNNER
    version_args = ("-v",)
    memory_error_markers = ("not enough memory",)


class PythonAdapter(LanguageAdapter):
    language = LanguageId.PYTHON
    display_name = "Python"
    aliases = ("py", "python3")
    default_image = "python:3.12-alpine"
    default_interpreter = "python3"
    eval_flag = "-c"
    runner = _PYTHON_RUNNER
    memory_error_markers = ("MemoryError",)


class JavaScriptAdapter(LanguageAdapter):
    language = LanguageId.JAVASCRIPT
    display_name = "JavaScript (Node.js)"
    aliases = ("js", "node", "nodejs")
    default_image = "node:20-alpine"
    default_interpreter = "node"
    eval_flag = "-e"
    runner = _JAVASCRIPT_RUNNER
    caps_address_space = False
    memory_error_markers = ("JavaScript heap out of memory", "Reached heap limit")

    def memory_args(self, memory_bytes: int) -> list[str]:
        return [f"--max-old-space-size={_heap_megabytes(memory_bytes)}"]


ADAPTER_CLASSES: dict[LanguageId, type[LanguageAdapter]] = {
    LanguageId.PHP: PhpAdapter,
    LanguageId.LUA: LuaAdapter,
    LanguageId.PYTHON: PythonAdapter,
    LanguageId.JAVASCRIPT: JavaScriptAdapter,
}
