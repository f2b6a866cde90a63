"""Plugin hook execution in a separate Python process.

Each call writes a small driver script to a private temporary directory,
runs it with the current interpreter and reads a single JSON envelope from
its stdout. The plugin's stderr (and anything it prints) is forwarded to
our stderr untouched.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from pixelguard.errors import (
    HookErrorKind,
    HookFailedError,
    HookOutputMismatchError,
)
from pixelguard.models.plugin import (
    CaptureInput,
    CaptureOutput,
    DifferInput,
    DifferOutput,
    HookEnvelope,
    LoadedPlugin,
    NotifierInput,
    PluginCategory,
    ReporterInput,
    ReporterOutput,
    StorageInput,
    StorageOutput,
)

logger = logging.getLogger(__name__)

DEFAULT_HOOK_TIMEOUT = 300.0
DRIVER_FILENAME = "pixelguard_hook.py"

T = TypeVar("T", bound=BaseModel)

# (category, hook) -> (request model, response model or None for void hooks)
HOOK_CONTRACTS: dict[tuple[PluginCategory, str], tuple[type[BaseModel], Optional[type[BaseModel]]]] = {
    (PluginCategory.STORAGE, "read"): (StorageInput, StorageOutput),
    (PluginCategory.STORAGE, "write"): (StorageInput, None),
    (PluginCategory.STORAGE, "exists"): (StorageInput, StorageOutput),
    (PluginCategory.STORAGE, "list"): (StorageInput, StorageOutput),
    (PluginCategory.STORAGE, "delete"): (StorageInput, None),
    (PluginCategory.CAPTURE, "capture"): (CaptureInput, CaptureOutput),
    (PluginCategory.DIFFER, "compare"): (DifferInput, DifferOutput),
    (PluginCategory.REPORTER, "generate"): (ReporterInput, ReporterOutput),
    (PluginCategory.NOTIFIER, "notify"): (NotifierInput, None),
}

DRIVER_TEMPLATE = '''\
import asyncio
import contextlib
import importlib.util
import inspect
import json
import os
import sys

ENTRY_PATH = {entry_path!r}
HOOK_NAME = {hook_name!r}
INPUT_JSON = {input_json!r}
OPTIONS_JSON = {options_json!r}

# Only the envelope reaches the real stdout. fd 1 is pointed at stderr, which
# also covers child processes and native code.
sys.stdout.flush()
ENVELOPE_STREAM = os.fdopen(os.dup(1), "w", encoding="utf-8")
os.dup2(2, 1)


def emit(envelope):
    ENVELOPE_STREAM.write(json.dumps(envelope) + "\\n")
    ENVELOPE_STREAM.flush()


def load_plugin():
    sys.path.insert(0, {package_dir!r})
    spec = importlib.util.spec_from_file_location("pixelguard_plugin_entry", ENTRY_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def main():
    try:
        payload = json.loads(INPUT_JSON)
        options = json.loads(OPTIONS_JSON)
        if isinstance(payload, dict):
            payload["options"] = {{**options, **(payload.get("options") or {{}})}}

        with contextlib.redirect_stdout(sys.stderr):
            plugin = load_plugin()
            hook = getattr(plugin, HOOK_NAME, None)
            if not callable(hook):
                emit({{
                    "success": False,
                    "error": 'Hook "%s" is not implemented by this plugin' % HOOK_NAME,
                    "errorKind": "not_implemented",
                }})
                return 1
            result = hook(payload)
            if inspect.isawaitable(result):
                result = asyncio.run(_await(result))
        encoded = json.dumps({{"success": True, "data": result}})
    except BaseException as exc:  # report everything, including SystemExit from the plugin
        message = str(exc) or exc.__class__.__name__
        emit({{"success": False, "error": message, "errorKind": "thrown"}})
        return 1
    ENVELOPE_STREAM.write(encoded + "\\n")
    ENVELOPE_STREAM.flush()
    return 0


async def _await(awaitable):
    return await awaitable


sys.exit(main())
'''


def _serialize(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json(by_alias=True, exclude_none=True)
    return json.dumps(value)


def generate_hook_script(plugin: LoadedPlugin, hook_name: str, input: Any) -> str:
    """Render the driver script that loads the plugin and calls one hook."""
    return DRIVER_TEMPLATE.format(
        entry_path=str(plugin.entry_path),
        package_dir=str(plugin.package_path),
        hook_name=hook_name,
        input_json=_serialize(input),
        options_json=json.dumps(plugin.options),
    )


def run_hook_script(
    script: str,
    working_dir: Path,
    timeout: Optional[float] = None,
) -> tuple[HookEnvelope, int]:
    """Run a driver script and parse its envelope.

    Returns the envelope plus the process exit code. Protocol problems
    (no envelope, unparseable output, spawn failure, timeout) are turned
    into failed envelopes rather than raised.
    """
    timeout = timeout or DEFAULT_HOOK_TIMEOUT
    with tempfile.TemporaryDirectory(prefix="pixelguard-hook-") as temp_dir:
        script_path = Path(temp_dir) / DRIVER_FILENAME
        script_path.write_text(script, encoding="utf-8")
        logger.debug("Executing plugin script at %s", script_path)

        try:
            proc = subprocess.run(
                [sys.executable, str(script_path)],
                cwd=str(working_dir),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            _forward_stderr(e.stderr)
            return HookEnvelope.err(
                f"Plugin process timed out after {timeout:g}s", HookErrorKind.TIMEOUT
            ), -1
        except OSError as e:
            return HookEnvelope.err(
                f"Failed to start plugin process: {e}", HookErrorKind.PROTOCOL
            ), -1

    _forward_stderr(proc.stderr)
    return parse_envelope(proc.stdout, proc.returncode, proc.stderr), proc.returncode


def _forward_stderr(stderr: Any) -> None:
    if not stderr:
        return
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    sys.stderr.write(stderr)
    sys.stderr.flush()


def parse_envelope(stdout: str, returncode: int, stderr: str = "") -> HookEnvelope:
    """Interpret a hook process's stdout according to the envelope protocol."""
    output = (stdout or "").strip()
    if not output:
        if returncode != 0:
            return HookEnvelope.err(
                f"Plugin process exited with code {returncode}. Stderr: {stderr.strip()}",
                HookErrorKind.PROTOCOL,
            )
        return HookEnvelope.ok()

    try:
        return HookEnvelope.model_validate_json(output)
    except ValidationError as e:
        return HookEnvelope.err(
            f"Failed to parse plugin output as JSON (exit code {returncode}): {e}. "
            f"Output was: {output}",
            HookErrorKind.PROTOCOL,
        )


def _call(
    plugin: LoadedPlugin,
    hook_name: str,
    input: Any,
    working_dir: Path,
    timeout: Optional[float],
) -> HookEnvelope:
    logger.debug("Calling hook %s on plugin %s", hook_name, plugin.name)
    script = generate_hook_script(plugin, hook_name, input)
    envelope, _ = run_hook_script(script, working_dir, timeout)
    if not envelope.success:
        raise HookFailedError(
            plugin.name,
            hook_name,
            envelope.error or "Unknown error",
            envelope.error_kind or HookErrorKind.THROWN,
        )
    return envelope


def execute_hook(
    plugin: LoadedPlugin,
    hook_name: str,
    input: Any,
    working_dir: Path,
    output_model: Optional[type[T]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """Run a plugin hook and return its data.

    With ``output_model`` the data is validated into that model; a mismatch
    raises HookOutputMismatchError. Without it the raw JSON value is
    returned (None for hooks that return nothing).
    """
    envelope = _call(plugin, hook_name, input, working_dir, timeout)
    if output_model is None:
        return envelope.data
    data = envelope.data if envelope.data is not None else {}
    try:
        return output_model.model_validate(data)
    except ValidationError as e:
        raise HookOutputMismatchError(plugin.name, hook_name, str(e)) from e


def execute_hook_void(
    plugin: LoadedPlugin,
    hook_name: str,
    input: Any,
    working_dir: Path,
    timeout: Optional[float] = None,
) -> None:
    """Run a plugin hook for its side effects only."""
    _call(plugin, hook_name, input, working_dir, timeout)


def invoke(
    plugin: LoadedPlugin,
    hook_name: str,
    request: BaseModel,
    working_dir: Path,
    timeout: Optional[float] = None,
) -> Optional[BaseModel]:
    """Typed hook call checked against the plugin category's contract."""
    contract = HOOK_CONTRACTS.get((plugin.category, hook_name))
    if contract is None:
        raise ValueError(
            f"Hook '{hook_name}' is not part of the {plugin.category.value} plugin contract"
        )
    request_model, response_model = contract
    if not isinstance(request, request_model):
        raise TypeError(
            f"Hook '{hook_name}' of {plugin.category.value} plugin '{plugin.name}' "
            f"expects {request_model.__name__}, got {type(request).__name__}"
        )
    if response_model is None:
        execute_hook_void(plugin, hook_name, request, working_dir, timeout)
        return None
    return execute_hook(plugin, hook_name, request, working_dir, response_model, timeout)
