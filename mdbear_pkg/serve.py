"""
Local preview server: serve the output directory and rebuild on changes.

A watchdog observer pushes change events onto one ordered queue. A single
RebuildWorker thread takes them off in arrival order and runs a full build for
each, so rebuilds never overlap. The HTTP server only reads the output tree.
"""

import os
import queue
import time
import logging
import threading
import functools
import webbrowser
from http.server import ThreadingHTTPServer, SimpleHTTPRequestHandler

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .core import BuildContext, SiteBuilder, build_site, log_file_dirs

logger = logging.getLogger('mdbear.serve')

DEFAULT_PORT = 3000
DEFAULT_DEBOUNCE = 0.2

# Opened/closed events fire whenever a build reads a file; reacting to them
# would rebuild forever.
REBUILD_EVENT_TYPES = frozenset({
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
})

STOP = object()


def _is_within(path, directory):
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)


class ChangeHandler(FileSystemEventHandler):
    """Queue filesystem events that should trigger a rebuild."""

    def __init__(self, events, ignore_dirs=(), only_paths=None):
        super().__init__()
        self.events = events
        self.ignore_dirs = [os.path.realpath(path) for path in ignore_dirs]
        self.only_paths = {os.path.realpath(path) for path in only_paths} if only_paths else None

    def is_relevant(self, path):
        path = os.path.realpath(os.fsdecode(path))
        if any(_is_within(path, directory) for directory in self.ignore_dirs):
            return False
        if self.only_paths is not None:
            return path in self.only_paths
        return True

    def on_any_event(self, event):
        if event.event_type not in REBUILD_EVENT_TYPES:
            return
        paths = [event.src_path]
        if getattr(event, 'dest_path', None):
            paths.append(event.dest_path)
        if any(self.is_relevant(path) for path in paths):
            self.events.put(event)


class RebuildWorker(threading.Thread):
    """
    Consume change events one at a time and rebuild the site for each.

    Events arriving during the debounce window after the first one are folded
    into the same rebuild. A failed rebuild is logged and the worker keeps
    going; the last good output stays in place for the server.
    """

    def __init__(self, config_path, events, build=build_site, debounce=DEFAULT_DEBOUNCE):
        super().__init__(name='mdbear-rebuild', daemon=True)
        self.config_path = config_path
        self.events = events
        self.build = build
        self.debounce = debounce
        self.builds = 0
        self.failures = 0

    def run(self):
        while True:
            event = self.events.get()
            if event is STOP:
                break
            stop_requested = self._drain_burst()
            self.rebuild(event)
            if stop_requested:
                break

    def _drain_burst(self):
        if self.debounce <= 0:
            return False
        time.sleep(self.debounce)
        stop_requested = False
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return stop_requested
            if event is STOP:
                stop_requested = True

    def rebuild(self, event):
        logger.info(f"Detected file change ({event.event_type}: {event.src_path}), rebuilding...")
        try:
            self.build(self.config_path)
        except Exception as e:
            self.failures += 1
            logger.error(f"Rebuild failed, keeping the previous output: {e}")
            return False
        self.builds += 1
        logger.info("Rebuild completed successfully")
        return True

    def stop(self):
        self.events.put(STOP)


class PreviewRequestHandler(SimpleHTTPRequestHandler):
    """Static file handler that logs requests at DEBUG instead of stderr."""

    def log_message(self, format, *args):
        logger.debug("%s - %s" % (self.address_string(), format % args))


def create_server(output_dir, port=DEFAULT_PORT, host='127.0.0.1'):
    handler = functools.partial(PreviewRequestHandler, directory=output_dir)
    return ThreadingHTTPServer((host, port), handler)


def schedule_watches(observer, ctx, events):
    """Watch the content and theme directories and the config file, whichever exist."""
    # Log lines written during a rebuild must not trigger the next one.
    ignore_dirs = [ctx.output_dir] + log_file_dirs()
    watched = []
    for label, path in (('content', ctx.content_dir), ('theme', ctx.theme_dir)):
        if os.path.isdir(path):
            observer.schedule(ChangeHandler(events, ignore_dirs=ignore_dirs), path, recursive=True)
            logger.info(f"Watching {label} directory {path} for changes")
            watched.append(path)
        else:
            logger.info(f"No {label} directory at {path}; not watching it")

    if os.path.isfile(ctx.config_path):
        handler = ChangeHandler(events, ignore_dirs=ignore_dirs, only_paths=[ctx.config_path])
        observer.schedule(handler, os.path.dirname(ctx.config_path), recursive=False)
        logger.info(f"Watching config file {ctx.config_path} for changes")
        watched.append(ctx.config_path)
    return watched


def open_in_browser(url):
    if webbrowser.open(url):
        logger.info(f"Opened browser: {url}")
    else:
        logger.warning(f"Failed to open browser for {url}")


def serve(config_path, port=DEFAULT_PORT, open_browser=True, debounce=DEFAULT_DEBOUNCE, host='127.0.0.1'):
    """
    Build once, then serve the output directory and rebuild on every change.

    The initial build is not guarded: if it fails there is nothing to serve and
    the error propagates. Runs until interrupted.
    """
    ctx = BuildContext.from_config_file(config_path)
    SiteBuilder(ctx).build()

    events = queue.Queue()
    httpd = create_server(ctx.output_dir, port, host)
    observer = Observer()
    observer.name = 'mdbear-watch'
    schedule_watches(observer, ctx, events)
    worker = RebuildWorker(ctx.config_path, events, debounce=debounce)

    url = f"http://localhost:{httpd.server_address[1]}"
    server_thread = threading.Thread(target=httpd.serve_forever, name='mdbear-http', daemon=True)

    observer.start()
    worker.start()
    server_thread.start()
    logger.info(f"Serving {ctx.output_dir} at {url} (press Ctrl+C to stop)")

    if open_browser:
        threading.Timer(0.1, open_in_browser, args=(url,)).start()

    try:
        while server_thread.is_alive():
            server_thread.join(1)
    except KeyboardInterrupt:
        logger.info("Stopping server...")
    finally:
        observer.stop()
        worker.stop()
        httpd.shutdown()
        httpd.server_close()
        observer.join()
        worker.join(timeout=10)
        server_thread.join(timeout=10)
