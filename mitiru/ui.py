"""Browser preview of a project's HTML/CSS UI backed by a mock state bridge."""

import json
import os
import signal
import sys
import threading
import urllib.parse
import webbrowser
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from mitiru.config import ConfigError, find_manifest, load
from mitiru.enginecache import ensure_source

DEFAULT_PORT = 8137
CEF_STATE_URL_PATH = "/mitiru_runtime/mitiru_cef_state.js"
RUNTIME_PREFIX = "/mitiru_runtime/"
_JS_CONTENT_TYPE = "application/javascript; charset=utf-8"
_STATE_PLACEHOLDER = "__MITIRU_INITIAL_STATE__"

# Stand-in for the engine's state bridge: retained values, state watchers,
# event handlers, and a dispatch that only logs.
_MOCK_BRIDGE_JS = """(function (root) {
  "use strict";
  var seed = __MITIRU_INITIAL_STATE__;
  var bridge = root.mitiru = root.mitiru || {};
  var channel = bridge._state = bridge._state || {};
  var retained = Object.create(null);
  var watchers = Object.create(null);
  var handlers = Object.create(null);
  var own = Object.prototype.hasOwnProperty;

  for (var name in seed) {
    if (own.call(seed, name)) { retained[name] = seed[name]; }
  }

  function listFor(table, key) {
    return table[key] || (table[key] = []);
  }

  function detach(table, key, fn) {
    var list = table[key];
    if (!list) { return; }
    var at = list.indexOf(fn);
    if (at !== -1) { list.splice(at, 1); }
  }

  function notify(list, value, tag) {
    if (!list) { return; }
    list.slice().forEach(function (fn) {
      try { fn(value); } catch (err) { console.error(tag, err); }
    });
  }

  function requireArgs(label, key, fn) {
    if (typeof key !== "string" || typeof fn !== "function") {
      throw new Error(label + ": (string, function) required");
    }
  }

  channel._onChange = function (key, value) {
    retained[key] = value;
    notify(watchers[key], value, "[mitiru.mock._onChange]");
  };

  channel._onEvent = function (key, payload) {
    notify(handlers[key], payload, "[mitiru.mock._onEvent]");
  };

  bridge.onStateChange = function (key, fn) {
    requireArgs("mitiru.onStateChange", key, fn);
    listFor(watchers, key).push(fn);
    if (own.call(retained, key)) {
      try { fn(retained[key]); } catch (err) { console.error("[mitiru.mock] initial fire threw:", err); }
    }
    return function () { bridge.offStateChange(key, fn); };
  };

  bridge.offStateChange = function (key, fn) { detach(watchers, key, fn); };

  bridge.on = function (key, fn) {
    requireArgs("mitiru.on", key, fn);
    listFor(handlers, key).push(fn);
    return function () { bridge.off(key, fn); };
  };

  bridge.off = function (key, fn) { detach(handlers, key, fn); };

  bridge.getState = function (key) { return retained[key]; };

  bridge.dispatch = function (action, payload) {
    if (typeof action !== "string") {
      return Promise.reject(new Error("mitiru.dispatch: action must be string"));
    }
    console.log("[mitiru.mock.dispatch]", action, payload);
    return Promise.resolve(null);
  };
})(typeof window !== "undefined" ? window : globalThis);
"""

_HTML_SAFE = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


def render_mock_state_js(initial_state: dict) -> str:
    """Mock ``window.mitiru`` bridge seeded with ``initial_state``."""
    text = json.dumps(initial_state, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    for raw, escaped in _HTML_SAFE.items():
        text = text.replace(raw, escaped)
    return _MOCK_BRIDGE_JS.replace(_STATE_PLACEHOLDER, text, 1)


def scene_url(assets_dir, project_root, arg=None) -> str:
    """URL path of the scene, relative to the served assets directory."""
    if not arg:
        return "/scene.html"
    try:
        rel = os.path.relpath(os.path.join(project_root, arg), assets_dir)
    except ValueError:
        rel = arg
    return "/" + rel.replace(os.sep, "/")


def load_initial_state(state_file=None) -> dict:
    """Flat JSON object of initial mock state; empty without a file."""
    if not state_file:
        return {}
    try:
        raw = Path(state_file).read_bytes()
    except OSError as exc:
        raise OSError(f"read --state {state_file}: {exc}") from exc
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"parse --state {state_file}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"parse --state {state_file}: expected a JSON object")
    return data


def make_handler(assets_dir, runtime_dir, mock_js: str):
    """Request handler serving assets, the engine runtime and the mock bridge."""
    assets = str(assets_dir)
    runtime = str(runtime_dir)
    body = mock_js.encode("utf-8")

    class _Handler(SimpleHTTPRequestHandler):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, directory=assets, **kwargs)

        def log_message(self, format, *args):
            pass

        def _request_path(self) -> str:
            return urllib.parse.unquote(urllib.parse.urlsplit(self.path).path)

        def _send_mock(self, no_store: bool, head: bool) -> None:
            self.send_response(200)
            self.send_header("Content-Type", _JS_CONTENT_TYPE)
            if no_store:
                self.send_header("Cache-Control", "no-store")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if not head:
                self.wfile.write(body)

        def _intercept(self, head: bool) -> bool:
            path = self._request_path()
            if path == CEF_STATE_URL_PATH:
                self._send_mock(True, head)
                return True
            if path.lower() == CEF_STATE_URL_PATH.lower():
                self._send_mock(False, head)
                return True
            return False

        def do_GET(self):
            if not self._intercept(False):
                super().do_GET()

        def do_HEAD(self):
            if not self._intercept(True):
                super().do_HEAD()

        def translate_path(self, path):
            if urllib.parse.urlsplit(path).path.startswith(RUNTIME_PREFIX):
                saved = self.directory
                self.directory = runtime
                try:
                    return super().translate_path(path[len(RUNTIME_PREFIX) - 1:])
                finally:
                    self.directory = saved
            return super().translate_path(path)

    return _Handler


def _interrupt(signum, frame):
    raise KeyboardInterrupt


def run_ui(scene=None, state_file=None, port: int = DEFAULT_PORT, start_dir=".") -> None:
    """Serve the project's assets with a mock bridge until interrupted."""
    try:
        manifest, project_root = find_manifest(start_dir)
    except ConfigError as exc:
        raise ConfigError(f"not inside a mitiru project: {exc}") from exc

    assets_dir = project_root / "assets"
    if not assets_dir.is_dir():
        raise FileNotFoundError(
            f"assets/ not found at {assets_dir} — run 'mitiru build' once to populate it"
        )

    try:
        config = load(manifest)
    except ConfigError as exc:
        raise ConfigError(f"load {manifest}: {exc}") from exc
    tag = config.engine_tag()
    try:
        engine_root = ensure_source(tag, sys.stdout)
    except Exception as exc:
        raise RuntimeError(f"resolve engine {tag}: {exc}") from exc
    runtime_dir = Path(engine_root) / "web" / "mitiru_runtime"

    url_path = scene_url(assets_dir, project_root, scene)
    mock_js = render_mock_state_js(load_initial_state(state_file))

    address = f"127.0.0.1:{port}"
    url = f"http://{address}{url_path}"
    try:
        server = ThreadingHTTPServer(
            ("127.0.0.1", port), make_handler(assets_dir, runtime_dir, mock_js)
        )
    except OSError as exc:
        raise OSError(f"server: {exc}") from exc

    print(f"mitiru ui  →  {url}")
    print("Ctrl+C to stop.")

    previous = None
    if threading.current_thread() is threading.main_thread():
        previous = signal.signal(signal.SIGTERM, _interrupt)
    with server:
        try:
            try:
                webbrowser.open(url)
            except webbrowser.Error:
                pass
            server.serve_forever()
        except KeyboardInterrupt:
            print("\nStopping.")
        finally:
            if previous is not None:
                signal.signal(signal.SIGTERM, previous)