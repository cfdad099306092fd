#!/usr/bin/env python3
"""
lazylog.py: terminal dashboard for journals, log files, containers and event logs
Requires: urwid  →  pip install urwid

Usage:    lazylog
          lazylog -s file -p /opt/app/logs -n 20000 -u 2
          journalctl -f | lazylog -C -r 'error|fail'

Keys:
  Tab / S-Tab   next / previous source category
  → / ←         next / previous source in the list (wraps around)
  Enter         reload the highlighted source
  ↑ ↓ PgUp PgDn scroll the log window
  g / G         jump to top / end (end resumes auto-scroll)
  + / -         tail depth up / down
  m / M         next / previous filter mode (default, fuzzy, regex)
  Space         pause / resume live tail
  r             refresh now
  /             edit the log filter     l   edit the source list filter
  Enter / Esc   leave the filter bar    Esc clear the log filter
  q             quit

Mouse:    scroll wheel moves the log window; click a source name to load it

Config:   optional JSON at ~/.config/lazylog/config.json (or --config) with keys
          tail_depth, tail_ladder, update_interval, file_roots,
          container_socket, command_timeout
"""

import urwid
import re
import os
import sys
import enum
import getpass
import json
import socket as _socket
import http.client
import queue as _queue
import subprocess
import threading
import argparse
import bisect
from pathlib import Path
from typing import NamedTuple
from urllib.parse import quote

# Palette
PALETTE = [
    # chrome
    ('header',   'white,bold',        'dark blue'),
    ('h_dim',    'light blue',        'dark blue'),
    ('tab',      'light gray',        'dark blue'),
    ('tab_on',   'black,bold',        'dark cyan'),
    ('live_on',  'light green,bold',  'dark blue'),
    ('live_off', 'dark gray',         'dark blue'),
    ('loading',  'yellow,bold',       'dark blue'),
    ('st_err',   'light red,bold',    'dark blue'),
    ('footer',   'black',             'light gray'),
    ('fk',       'dark blue,bold',    'light gray'),
    # filter bar
    ('fl',       'dark cyan,bold',    'default'),
    ('fm',       'black,bold',        'dark cyan'),
    ('fe',       'white',             'dark gray'),
    ('fe_f',     'white,bold',        'dark blue'),
    ('ferr',     'light red,bold',    'default'),
    # source list
    ('nm',       'light gray',        'default'),
    ('nm_sel',   'black',             'dark green'),
    ('nm_dim',   'dark gray',         'default'),
    # log line base colours
    ('ln',       'light gray',        'default'),
    ('le',       'light red',         'default'),
    ('lw',       'yellow',            'default'),
    ('li',       'light green',       'default'),
    ('ld',       'dark cyan',         'default'),
    # annotation categories
    ('a_addr',   'light cyan',        'default'),
    ('a_ts',     'light magenta',     'default'),
    ('a_id',     'light blue',        'default'),
    ('a_self',   'light green,bold',  'default'),
    ('a_path',   'dark cyan',         'default'),
    ('a_num',    'light blue',        'default'),
    ('hm',       'black',             'yellow'),
    ('lno',      'dark gray',         'default'),
]

_BASE_ATTR  = {'error': 'le', 'warn': 'lw', 'info': 'li', 'debug': 'ld'}
_BASE_ATTRS = frozenset({'ln', 'le', 'lw', 'li', 'ld'})

# Configuration defaults
TAIL_LADDER      = (5000, 10000, 20000, 30000, 50000, 100000, 150000, 200000)
TAIL_DEPTH       = 100000
UPDATE_INTERVAL  = 5.0      # seconds between live-tail refreshes
COMMAND_TIMEOUT  = 10.0     # seconds before a collector subprocess is killed
FILE_ROOTS       = ('/var/log',)
CONTAINER_SOCKET = '/var/run/docker.sock'
CONFIG_PATH      = Path.home() / '.config' / 'lazylog' / 'config.json'


def _warn(msg: str) -> None:
    print(f'[lazylog warn] {msg}', file=sys.stderr)


# Enumerations

class _Cyclic(enum.Enum):
    # Fixed small set with a total successor / predecessor.

    def next(self):
        members = list(type(self))
        return members[(members.index(self) + 1) % len(members)]

    def prev(self):
        members = list(type(self))
        return members[(members.index(self) - 1) % len(members)]


class Category(_Cyclic):
    JOURNAL   = 'journal'
    FILE      = 'file'
    CONTAINER = 'container'
    EVENT     = 'event'

    @property
    def title(self) -> str:
        return _CATEGORY_TITLES[self]


_CATEGORY_TITLES = {
    Category.JOURNAL:   'Journals',
    Category.FILE:      'Files',
    Category.CONTAINER: 'Containers',
    Category.EVENT:     'Events',
}


class FilterMode(_Cyclic):
    DEFAULT = 'default'
    FUZZY   = 'fuzzy'
    REGEX   = 'regex'


class TailState(enum.Enum):
    IDLE    = 'idle'
    LOADING = 'loading'
    READY   = 'ready'
    STOPPED = 'stopped'


# Data model

class LogLine(NamedTuple):
    index: int      # position in the unfiltered source
    raw:   str


class SourceSnapshot(NamedTuple):
    source_id:  str
    generation: int
    lines:      tuple


class FilterSpec(NamedTuple):
    mode:  FilterMode = FilterMode.DEFAULT
    query: str        = ''


class Span(NamedTuple):
    start:    int
    end:      int
    category: str


class AnnotatedLine(NamedTuple):
    raw:   str
    spans: tuple
    level: str        = 'normal'
    index: int | None = None


class IdentityContext:
    # Host/user facts, read-only after construction. The whole-word token
    # pattern is compiled here once and shared by every annotate() call.

    def __init__(self, host_name: str = '', user_name: str = '',
                 known_user_names=frozenset(), known_root_dirs=frozenset()):
        self.host_name        = host_name
        self.user_name        = user_name
        self.known_user_names = frozenset(known_user_names)
        self.known_root_dirs  = frozenset(known_root_dirs)
        self.pattern          = _identity_pattern(self)

    def __repr__(self) -> str:
        return (f'IdentityContext(host={self.host_name!r}, user={self.user_name!r}, '
                f'{len(self.known_user_names)} users, {len(self.known_root_dirs)} dirs)')


class Status(NamedTuple):
    kind:  str              # 'idle' | 'loading' | 'ready' | 'error'
    error: str | None = None


class Window(NamedTuple):
    lines:          tuple
    scroll_offset:  int
    total_filtered: int
    status:         Status
    filter_error:   bool = False


class ViewState:
    # Per-category cursor record. Mutated by Session and clamped by TailController.

    def __init__(self, tail_depth: int = TAIL_DEPTH):
        self.selected_index   = 0
        self.scroll_offset    = 0
        self.tail_depth       = tail_depth
        self.list_filter_text = ''
        self.auto_scroll      = True

    def __repr__(self) -> str:
        return (f'ViewState(selected={self.selected_index}, '
                f'scroll={self.scroll_offset}, tail={self.tail_depth}, '
                f'list_filter={self.list_filter_text!r}, '
                f'auto_scroll={self.auto_scroll})')


def step_tail_depth(depth: int, direction: int, ladder=TAIL_LADDER) -> int:
    # Move one rung up (+1) or down (-1) the ladder; off-ladder values snap first.
    if depth not in ladder:
        return min(ladder, key=lambda rung: (abs(rung - depth), rung))
    if direction == 0:
        return depth
    i = ladder.index(depth) + (1 if direction > 0 else -1)
    return ladder[max(0, min(len(ladder) - 1, i))]


# Errors

class CollectorError(Exception):
    UNAVAILABLE = 'unavailable'
    TIMEOUT     = 'timeout'
    NOT_FOUND   = 'not_found'

    def __init__(self, kind: str, message: str = ''):
        super().__init__(message or kind)
        self.kind    = kind
        self.message = message or kind


class FilterCompileError(ValueError):
    # A regex query that does not compile (yet). Always recovered locally.
    pass


# Filter Engine

def compile_regex(query: str) -> re.Pattern:
    try:
        return re.compile(query, re.IGNORECASE)
    except re.error as exc:
        raise FilterCompileError(f'{query!r}: {exc}') from exc


def regex_fallback(spec: FilterSpec) -> bool:
    # True when a regex query is being matched literally because it does not compile.
    if spec.mode is not FilterMode.REGEX or not spec.query:
        return False
    try:
        compile_regex(spec.query)
    except FilterCompileError:
        return True
    return False


def match_default(query: str, text: str) -> bool:
    return query.lower() in text.lower()


def match_fuzzy(query: str, text: str) -> bool:
    # Every query character appears in text, in order, not necessarily adjacent.
    it = iter(text.lower())
    return all(ch in it for ch in query.lower())


def _text(line) -> str:
    return line.raw if isinstance(line, LogLine) else line


def make_matcher(spec: FilterSpec):
    # Predicate over one line of text for spec; compiled once, reused per line.
    if not spec.query:
        return lambda text: True
    if spec.mode is FilterMode.FUZZY:
        q = spec.query.lower()
        return lambda text: match_fuzzy(q, text)
    if spec.mode is FilterMode.REGEX:
        try:
            return compile_regex(spec.query).search
        except FilterCompileError:
            pass
    q = spec.query.lower()
    return lambda text: q in text.lower()


def apply_filter(lines, spec: FilterSpec) -> list:
    """
    Return the lines (LogLine or str) matching spec, in their original order.
    Always runs over the whole sequence; an empty query keeps everything.
    A regex that fails to compile is matched as a literal substring instead.
    """
    if not spec.query:
        return list(lines)
    match = make_matcher(spec)
    return [l for l in lines if match(_text(l))]


def filter_names(names, text: str) -> list:
    # Source list filter: always plain substring, never fuzzy/regex.
    return apply_filter(names, FilterSpec(FilterMode.DEFAULT, text))


def highlight_pattern(spec: FilterSpec) -> re.Pattern | None:
    # Pattern the renderer overlays on visible lines; fuzzy matches are not marked.
    if not spec.query or spec.mode is FilterMode.FUZZY:
        return None
    if spec.mode is FilterMode.REGEX:
        try:
            pat = compile_regex(spec.query)
            # zero-width patterns would paint nothing but cost a pass per line
            return pat if not pat.match('') else None
        except FilterCompileError:
            pass
    return re.compile(re.escape(spec.query), re.IGNORECASE)


# Annotation Engine

ADDRESS       = 'address'
TIMESTAMP     = 'timestamp'
IDENTIFIER    = 'identifier'
SELF_IDENTITY = 'self-identity'
PATH          = 'path'
NUMERIC       = 'numeric'
DEFAULT       = 'unknown-default'

CATEGORY_ATTR = {
    ADDRESS:       'a_addr',
    TIMESTAMP:     'a_ts',
    IDENTIFIER:    'a_id',
    SELF_IDENTITY: 'a_self',
    PATH:          'a_path',
    NUMERIC:       'a_num',
}

_MONTHS = 'Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec'

_RE_ADDRESS = re.compile(
    r'(?<![\w.:])(?:'
    r'(?:\d{1,3}\.){3}\d{1,3}(?::\d{1,5})?'                      # IPv4[:port]
    r'|[0-9A-Fa-f]{2}(?:[:-][0-9A-Fa-f]{2}){5}'                  # MAC
    r'|(?:[0-9A-Fa-f]{1,4}:){7}[0-9A-Fa-f]{1,4}'                 # IPv6, full form
    r'|(?:[0-9A-Fa-f]{1,4}:){1,6}:(?:[0-9A-Fa-f]{1,4}(?::[0-9A-Fa-f]{1,4})*)?'  # IPv6, ::
    r')(?![\w.:])'
)
_RE_TIMESTAMP = re.compile(
    r'\d{4}[-/]\d{2}[-/]\d{2}(?:[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)?'
    r'|\d{2}/(?:' + _MONTHS + r')/\d{4}:\d{2}:\d{2}:\d{2}(?: [+-]\d{4})?'
    r'|\b(?:' + _MONTHS + r')\s+\d{1,2}\s+\d{2}:\d{2}:\d{2}\b'
    r'|\b\d{2}:\d{2}:\d{2}(?:[.,]\d+)?\b'
)
_RE_IDENTIFIER = re.compile(
    r'\b0x[0-9A-Fa-f]+\b'
    r'|\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b'
)
_RE_PATH = re.compile(
    r'(?:https?://)?[\w.~@-]*(?:/[\w.~@%+=:-]+)+/?'
    r'|\b[A-Za-z]:\\(?:[^\\\s"\'<>|]+\\)*[^\\\s"\'<>|]*'
)
_RE_SCHEME    = re.compile(r'^https?://')
_PATH_TRAIL   = '.,:;)]}\'"/\\'
_RE_NUMERIC   = re.compile(r'(?<![\w.:/\\-])\d+(?![\w.:/\\-])')

_RE_LEVEL = re.compile(
    r'\b(?P<error>error|err|fatal|crit(?:ical)?|panic|fail(?:ed|ure)?|emerg|alert)\b'
    r'|\b(?P<warn>warn(?:ing)?)\b'
    r'|\b(?P<info>info|notice)\b'
    r'|\b(?P<debug>debug|trace)\b',
    re.IGNORECASE,
)


def _find(pattern: re.Pattern):
    def recognize(line: str, identity: IdentityContext):
        return [(m.start(), m.end()) for m in pattern.finditer(line)]
    return recognize


def _find_paths(line: str, identity: IdentityContext) -> list:
    # Span bounds drop a leading http(s):// and trailing punctuation / slash.
    out = []
    for m in _RE_PATH.finditer(line):
        start, end = m.start(), m.end()
        s = _RE_SCHEME.match(m.group(0))
        if s:
            start += s.end()
        while end > start and line[end - 1] in _PATH_TRAIL:
            end -= 1
        text = line[start:end]
        if '/' not in text and '\\' not in text:
            continue
        if not any(c.isalpha() for c in text):
            continue
        out.append((start, end))
    return out


def _identity_pattern(identity: IdentityContext) -> re.Pattern | None:
    names = {identity.host_name, identity.user_name}
    names |= set(identity.known_user_names) | set(identity.known_root_dirs)
    names = sorted((n for n in names if n), key=lambda n: (-len(n), n))
    if not names:
        return None
    alt = '|'.join(re.escape(n) for n in names)
    return re.compile(rf'(?<![\w.-])(?:{alt})(?![\w-])')


def _find_identity(line: str, identity: IdentityContext) -> list:
    if identity.pattern is None:
        return []
    return [(m.start(), m.end()) for m in identity.pattern.finditer(line)]


# Fixed precedence: earlier entries win any region they share with later ones.
RECOGNIZERS = (
    (ADDRESS,       _find(_RE_ADDRESS)),
    (TIMESTAMP,     _find(_RE_TIMESTAMP)),
    (IDENTIFIER,    _find(_RE_IDENTIFIER)),
    (SELF_IDENTITY, _find_identity),
    (PATH,          _find_paths),
    (NUMERIC,       _find(_RE_NUMERIC)),
)
PRECEDENCE = tuple(category for category, _ in RECOGNIZERS)


def fold_spans(spans: list, start: int, end: int, category: str) -> list:
    """
    Add [start, end) to a sorted, non-overlapping span list.
    Regions already covered keep their category; only the uncovered
    gaps of the new candidate are inserted.
    """
    pieces = []
    pos    = start
    for s in spans:
        if s.end <= pos:
            continue
        if s.start >= end:
            break
        if s.start > pos:
            pieces.append(Span(pos, s.start, category))
        pos = max(pos, s.end)
    if pos < end:
        pieces.append(Span(pos, end, category))
    if not pieces:
        return spans
    return sorted(spans + pieces)


def detect_level(line: str) -> str:
    m = _RE_LEVEL.search(line)
    return m.lastgroup if m else 'normal'


def annotate(line: str, identity: IdentityContext = IdentityContext(),
             index: int | None = None) -> AnnotatedLine:
    spans: list = []
    for category, recognize in RECOGNIZERS:
        for start, end in recognize(line, identity):
            if start < end:
                spans = fold_spans(spans, start, end, category)
    return AnnotatedLine(line, tuple(spans), detect_level(line), index)


def _hl(tokens: list, pattern: re.Pattern, attr: str, base_only: bool = True) -> list:
    # Single highlight pass over a [(attr, text), ...] token list.
    out = []
    for a, text in tokens:
        if base_only and a not in _BASE_ATTRS:
            out.append((a, text))
            continue
        pos = 0
        for m in pattern.finditer(text):
            if m.start() > pos:
                out.append((a, text[pos:m.start()]))
            out.append((attr, m.group(0)))
            pos = m.end()
        if pos < len(text):
            out.append((a, text[pos:]))
    return [(a, t) for a, t in out if t]


def make_markup(aline: AnnotatedLine, search_re=None, lineno: bool = True) -> list:
    base = _BASE_ATTR.get(aline.level, 'ln')
    toks = []
    pos  = 0
    for span in aline.spans:
        if span.start > pos:
            toks.append((base, aline.raw[pos:span.start]))
        toks.append((CATEGORY_ATTR.get(span.category, base),
                     aline.raw[span.start:span.end]))
        pos = span.end
    if pos < len(aline.raw):
        toks.append((base, aline.raw[pos:]))
    if search_re:
        # filter match overrides annotation colours
        toks = _hl(toks, search_re, 'hm', base_only=False)
    pfx = []
    if lineno and aline.index is not None:
        pfx = [('lno', f'{aline.index + 1:7d} │ ')]
    return pfx + toks


# Identity Context

def load_identity(passwd: str = '/etc/passwd', root: str = '/') -> IdentityContext:
    host = _socket.gethostname().split('.')[0]
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = os.environ.get('USERNAME', '')
    if '\\' in user:
        user = user.split('\\')[-1]

    users = set()
    if os.path.exists(passwd):
        try:
            with open(passwd, errors='replace') as fh:
                for entry in fh:
                    name = entry.split(':', 1)[0].strip()
                    if name and not name.startswith('#'):
                        users.add(name)
        except OSError as e:
            _warn(f'{passwd}: {e}')

    dirs = set()
    try:
        with os.scandir(root) as it:
            for entry in it:
                if entry.is_dir(follow_symlinks=False) and not entry.name.startswith('.'):
                    dirs.add(entry.name)
    except OSError as e:
        _warn(f'{root}: {e}')

    return IdentityContext(host, user, frozenset(users), frozenset(dirs))


# Source Collectors

class Collector:
    """
    Uniform contract every source category implements.

    list_available() -> ordered list of source ids for the selector list
    fetch(source_id, tail_depth) -> at most tail_depth trailing lines

    Both raise CollectorError instead of hanging or crashing. Collectors keep
    no cache; every fetch is a full re-read.
    """
    category: Category

    def list_available(self) -> list:
        raise NotImplementedError

    def fetch(self, source_id: str, tail_depth: int) -> list:
        raise NotImplementedError


def _tail(lines: list, tail_depth: int) -> list:
    if tail_depth <= 0:
        return []
    return lines[-tail_depth:]


def run_command(args: list, timeout: float = COMMAND_TIMEOUT) -> str:
    # Run a collector command; map every failure onto CollectorError.
    try:
        proc = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                stdin=subprocess.DEVNULL)
    except FileNotFoundError as exc:
        raise CollectorError(CollectorError.UNAVAILABLE, f'{args[0]} not found') from exc
    except OSError as exc:
        raise CollectorError(CollectorError.UNAVAILABLE, f'{args[0]}: {exc}') from exc
    try:
        out, err = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        raise CollectorError(CollectorError.TIMEOUT,
                             f'{args[0]} did not answer within {timeout:g}s')
    if proc.returncode != 0:
        msg = err.decode('utf-8', errors='replace').strip() or f'{args[0]} exited {proc.returncode}'
        kind = (CollectorError.NOT_FOUND
                if 'no such' in msg.lower() or 'not found' in msg.lower()
                else CollectorError.UNAVAILABLE)
        raise CollectorError(kind, msg.splitlines()[0])
    return out.decode('utf-8', errors='replace')


class JournalCollector(Collector):
    category = Category.JOURNAL

    def __init__(self, timeout: float = COMMAND_TIMEOUT, runner=run_command):
        self._timeout = timeout
        self._run     = runner

    def list_available(self) -> list:
        out = self._run(['journalctl', '--no-pager', '-F', '_SYSTEMD_UNIT'],
                        timeout=self._timeout)
        return sorted({l.strip() for l in out.splitlines() if l.strip()})

    def fetch(self, source_id: str, tail_depth: int) -> list:
        out = self._run(['journalctl', '-u', source_id, '--no-pager',
                         '-n', str(max(0, tail_depth))],
                        timeout=self._timeout)
        return _tail(out.splitlines(), tail_depth)


_SYSLOG_NAMES = frozenset({
    'syslog', 'messages', 'dmesg', 'kern', 'auth', 'daemon', 'debug',
    'secure', 'maillog', 'cron', 'user',
})
_ARCHIVE_SUFFIXES = ('.gz', '.xz', '.bz2', '.zip', '.zst')


def is_log_file(name: str) -> bool:
    if name.endswith(_ARCHIVE_SUFFIXES):
        return False
    return name.endswith('.log') or name in _SYSLOG_NAMES


def read_tail(path: str, n: int, block: int = 64 * 1024) -> list:
    # Read the last n lines by seeking backwards from the end in growing blocks.
    if n <= 0:
        return []
    with open(path, 'rb') as fh:
        pos    = fh.seek(0, os.SEEK_END)
        data   = b''
        while pos > 0 and data.count(b'\n') <= n:
            size = min(block, pos)
            pos -= size
            fh.seek(pos)
            data  = fh.read(size) + data
            block = block * 2
    lines = data.decode('utf-8', errors='replace').splitlines()
    return lines[-n:]


class FileCollector(Collector):
    category = Category.FILE

    def __init__(self, roots=FILE_ROOTS):
        self.roots = [str(r) for r in roots]

    def list_available(self) -> list:
        found   = []
        missing = []
        for root in self.roots:
            if not os.path.isdir(root):
                missing.append(root)
                continue
            for dirpath, dirnames, filenames in os.walk(root, onerror=lambda _e: None):
                dirnames.sort()
                for name in sorted(filenames):
                    if is_log_file(name):
                        found.append(os.path.join(dirpath, name))
        if missing and len(missing) == len(self.roots):
            raise CollectorError(CollectorError.NOT_FOUND,
                                 f'no such directory: {", ".join(missing)}')
        return found

    def fetch(self, source_id: str, tail_depth: int) -> list:
        try:
            return read_tail(source_id, tail_depth)
        except FileNotFoundError as exc:
            raise CollectorError(CollectorError.NOT_FOUND, f'{source_id} not found') from exc
        except PermissionError as exc:
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 f'permission denied: {source_id}') from exc
        except OSError as exc:
            raise CollectorError(CollectorError.UNAVAILABLE, f'{source_id}: {exc}') from exc


class _UnixHTTPConnection(http.client.HTTPConnection):
    # HTTPConnection that dials a Unix domain socket.
    def __init__(self, socket_path: str, timeout: float):
        super().__init__('localhost', timeout=timeout)
        self._socket_path = socket_path

    def connect(self) -> None:
        s = _socket.socket(_socket.AF_UNIX, _socket.SOCK_STREAM)
        s.settimeout(self.timeout)
        s.connect(self._socket_path)
        self.sock = s


def demux_docker_stream(body: bytes) -> list:
    """
    Split a container log body into lines.
    Each frame: [stream_type:1][pad:3][length:4][payload:length]
    stream_type: 1=stdout  2=stderr. Containers with a TTY skip this framing;
    a framed stream always starts with 1 or 2, so the first byte decides.
    """
    if not body:
        return []
    if body[0] not in (1, 2):
        return body.decode('utf-8', errors='replace').splitlines()
    chunks = []
    pos    = 0
    while pos + 8 <= len(body):
        length = int.from_bytes(body[pos + 4:pos + 8], 'big')
        chunks.append(body[pos + 8:pos + 8 + length])
        pos += 8 + length
    return b''.join(chunks).decode('utf-8', errors='replace').splitlines()


class ContainerCollector(Collector):
    category = Category.CONTAINER

    def __init__(self, socket_path: str = CONTAINER_SOCKET,
                 timeout: float = COMMAND_TIMEOUT):
        self.socket_path = socket_path
        self._timeout    = timeout

    def _get(self, path: str) -> bytes:
        if not os.path.exists(self.socket_path):
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 f'no container socket at {self.socket_path}')
        conn = _UnixHTTPConnection(self.socket_path, self._timeout)
        try:
            conn.request('GET', path, headers={'Accept': 'application/json'})
            resp = conn.getresponse()
            body = resp.read()
        except TimeoutError as exc:
            raise CollectorError(CollectorError.TIMEOUT,
                                 f'{self.socket_path} did not answer') from exc
        except (OSError, http.client.HTTPException) as exc:
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 f'{self.socket_path}: {exc}') from exc
        finally:
            conn.close()
        if resp.status == 404:
            raise CollectorError(CollectorError.NOT_FOUND, f'{path}: not found')
        if resp.status != 200:
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 f'{path}: HTTP {resp.status}')
        return body

    def list_available(self) -> list:
        try:
            containers = json.loads(self._get('/containers/json'))
        except ValueError as exc:
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 f'bad container list: {exc}') from exc
        names = []
        for c in containers:
            name = (c.get('Names') or [''])[0].lstrip('/')
            names.append(name or c.get('Id', '')[:12])
        return sorted(n for n in names if n)

    def fetch(self, source_id: str, tail_depth: int) -> list:
        path = (f'/containers/{quote(source_id, safe="")}/logs'
                f'?stdout=1&stderr=1&tail={max(0, tail_depth)}')
        return _tail(demux_docker_stream(self._get(path)), tail_depth)


def split_events(text: str) -> list:
    # wevtutil text output: one 'Event[n]:' block per record.
    blocks = re.split(r'(?m)^(?=Event\[\d+\])', text)
    return [b for b in blocks if b.strip()]


class EventCollector(Collector):
    category = Category.EVENT

    def __init__(self, timeout: float = COMMAND_TIMEOUT, runner=run_command,
                 platform: str = sys.platform):
        self._timeout  = timeout
        self._run      = runner
        self._platform = platform

    def _check(self) -> None:
        if not self._platform.startswith('win'):
            raise CollectorError(CollectorError.UNAVAILABLE,
                                 'event logs are only available on Windows')

    def list_available(self) -> list:
        self._check()
        out = self._run(['wevtutil', 'el'], timeout=self._timeout)
        return [l.strip() for l in out.splitlines() if l.strip()]

    def fetch(self, source_id: str, tail_depth: int) -> list:
        self._check()
        out = self._run(['wevtutil', 'qe', source_id, f'/c:{max(0, tail_depth)}',
                         '/rd:true', '/f:text'], timeout=self._timeout)
        # newest first from wevtutil; show oldest first like every other source
        lines = []
        for block in reversed(split_events(out)):
            lines.extend(block.rstrip('\n').splitlines())
        return _tail(lines, tail_depth)


def build_collectors(config: 'Config') -> dict:
    return {
        Category.JOURNAL:   JournalCollector(timeout=config.command_timeout),
        Category.FILE:      FileCollector(config.file_roots),
        Category.CONTAINER: ContainerCollector(config.container_socket,
                                               timeout=config.command_timeout),
        Category.EVENT:     EventCollector(timeout=config.command_timeout),
    }


# Live Tail Controller

def _spawn_thread(job) -> None:
    threading.Thread(target=job, daemon=True, name='lazylog-fetch').start()


def relocate_line(lines, index: int, raw: str) -> int | None:
    """
    Find where a line that sat at `index` in the previous snapshot went.
    New lines at the end push the tail window forward (the line moves toward
    the start); a larger tail depth pulls older lines in (it moves toward the
    end). The nearest match at or below index is tried first.
    """
    for i in range(min(index, len(lines) - 1), -1, -1):
        if lines[i].raw == raw:
            return i
    for i in range(index + 1, len(lines)):
        if lines[i].raw == raw:
            return i
    return None


class TailTimer:
    # Recurring timer thread; fire() runs off the main loop, so it only posts.

    def __init__(self, interval: float, fire):
        self.interval = interval
        self._fire    = fire
        self._stop    = threading.Event()
        self._running = threading.Event()
        self._thread  = threading.Thread(target=self._run, daemon=True,
                                         name='lazylog-tail')
        self._thread.start()

    def resume(self) -> None:
        self._running.set()

    def suspend(self) -> None:
        self._running.clear()

    def stop(self) -> None:
        self._running.clear()
        self._stop.set()

    @property
    def running(self) -> bool:
        return self._running.is_set() and not self._stop.is_set()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if self._running.is_set():
                self._fire()


class TailController:
    """
    Owns one source category: its ViewState, its current SourceSnapshot
    and the live-tail timer.

    Every fetch runs on a worker (spawn) and posts its result into the inbox;
    drain() runs on the main loop and is the only place results are applied.
    Each fetch gets a generation number: results older than the newest applied
    one, or issued before the last source switch / deactivation, are dropped.
    """

    def __init__(self, collector: Collector, identity: IdentityContext = IdentityContext(),
                 tail_depth: int = TAIL_DEPTH, ladder=TAIL_LADDER,
                 tick_interval: float | None = UPDATE_INTERVAL,
                 viewport_height: int = 20, spawn=None, notify=None):
        self.collector       = collector
        self.category        = collector.category
        self.identity        = identity
        self.ladder          = tuple(ladder)
        self.view            = ViewState(tail_depth)
        self.viewport_height = max(1, viewport_height)
        self.filter_spec     = FilterSpec()
        self.state           = TailState.IDLE
        self.active          = False
        self.paused          = False
        self.source_id: str | None = None
        self.snapshot: SourceSnapshot | None = None

        self.names:         list = []
        self.visible_names: list = []
        self.names_loaded        = False
        self.names_error: str | None = None

        self._spawn    = spawn if spawn is not None else _spawn_thread
        self._notify   = notify if notify is not None else (lambda: None)
        self._inbox: _queue.SimpleQueue = _queue.SimpleQueue()
        self._issued   = 0          # newest generation handed to a worker
        self._applied  = 0          # newest generation applied
        self._floor    = 0          # generations below this are cancelled
        self._pending: set = set()
        self._names_token = 0
        self._error: CollectorError | None = None
        self._filtered: list = []
        self._filter_error = False
        self._window   = Window((), 0, 0, Status('idle'))

        self._interval = tick_interval
        self._timer: TailTimer | None = None

    # Properties

    @property
    def generation(self) -> int:
        return self._issued

    @property
    def in_flight(self) -> bool:
        return bool(self._pending)

    @property
    def selected_name(self) -> str | None:
        if not self.visible_names:
            return None
        return self.visible_names[self.view.selected_index]

    @property
    def timer_running(self) -> bool:
        return self._timer is not None and self._timer.running

    def current_window(self) -> Window:
        return self._window

    # Messaging

    def _post(self, msg: tuple) -> None:
        self._inbox.put(msg)
        self._notify()

    def drain(self) -> bool:
        # Apply everything workers and the timer have posted. Returns True if republished.
        changed = False
        while True:
            try:
                msg = self._inbox.get_nowait()
            except _queue.Empty:
                break
            kind = msg[0]
            if kind == 'tick':
                changed |= self.tick()
            elif kind == 'lines':
                changed |= self._apply(msg[1], msg[2])
            elif kind == 'names':
                changed |= self._apply_names(msg[1], msg[2])
        return changed

    # Source list

    def load_names(self) -> None:
        self._names_token += 1
        token     = self._names_token
        collector = self.collector

        def _job():
            try:
                result = collector.list_available()
            except CollectorError as exc:
                result = exc
            self._post(('names', token, result))

        self._spawn(_job)

    def _apply_names(self, token: int, result) -> bool:
        if token != self._names_token:
            return False
        self.names_loaded = True
        if isinstance(result, CollectorError):
            self.names_error = result.message
            return True
        self.names_error = None
        self.names       = list(result)
        self._refilter_names()
        return True

    def _refilter_names(self) -> None:
        self.visible_names = filter_names(self.names, self.view.list_filter_text)
        last = len(self.visible_names) - 1
        self.view.selected_index = max(0, min(self.view.selected_index, last))

    def set_list_filter(self, text: str) -> None:
        self.view.list_filter_text = text
        self._refilter_names()

    def next_name(self) -> str | None:
        if self.visible_names:
            self.view.selected_index = (self.view.selected_index + 1) % len(self.visible_names)
        return self.selected_name

    def prev_name(self) -> str | None:
        if self.visible_names:
            self.view.selected_index = (self.view.selected_index - 1) % len(self.visible_names)
        return self.selected_name

    def select_index(self, index: int) -> str | None:
        if 0 <= index < len(self.visible_names):
            self.view.selected_index = index
        return self.selected_name

    # Loading

    def select_source(self, source_id: str | None = None) -> int | None:
        # Switch the log window to a new source; anything still in flight is dropped.
        source_id = source_id or self.selected_name
        if source_id is None:
            return None
        self.source_id          = source_id
        self.snapshot           = None
        self._filtered          = []
        self._error             = None
        self._floor             = self._issued + 1
        self._pending.clear()
        self.view.scroll_offset = 0
        self.view.auto_scroll   = True
        return self.refresh()

    def refresh(self) -> int | None:
        # Single entry point for every reload, user-driven or timer-driven.
        if self.source_id is None or self.state is TailState.STOPPED:
            return None
        self._issued += 1
        gen       = self._issued
        source_id = self.source_id
        depth     = self.view.tail_depth
        collector = self.collector
        self._pending.add(gen)
        self.state = TailState.LOADING

        def _job():
            try:
                raw  = collector.fetch(source_id, depth)
                # built completely here; the main loop only swaps the reference
                snap = SourceSnapshot(source_id, gen, tuple(
                    LogLine(i, line) for i, line in enumerate(raw[-depth:] if depth > 0 else [])))
                self._post(('lines', gen, snap))
            except CollectorError as exc:
                self._post(('lines', gen, exc))

        self._spawn(_job)
        self._publish()
        return gen

    def tick(self) -> bool:
        # Timer entry: dropped (not queued) while paused, inactive or already loading.
        if not self.active or self.paused or self.source_id is None:
            return False
        if self._pending or self.state is TailState.STOPPED:
            return False
        return self.refresh() is not None

    def _apply(self, gen: int, result) -> bool:
        before = self._status()
        self._pending.discard(gen)
        if self.state is not TailState.STOPPED:
            self.state = TailState.LOADING if self._pending else TailState.READY

        if gen < self._floor or gen <= self._applied:
            # content is dropped, but the status may have moved on
            if self._status() == before:
                return False
            self._publish()
            return True

        self._applied = gen
        if isinstance(result, CollectorError):
            # keep the last good snapshot on screen
            self._error = result
            self._recompute()
        else:
            anchor        = self._anchor()
            self._error   = None
            self.snapshot = result
            self._recompute(anchor)
        return True

    def _anchor(self) -> tuple | None:
        # (index, raw) of the top visible line while the view is detached from the end.
        if self.view.auto_scroll or not self._filtered:
            return None
        top = self._filtered[self.view.scroll_offset]
        return top.index, top.raw

    # Filtering / windowing

    def set_filter(self, spec: FilterSpec) -> None:
        if spec == self.filter_spec:
            return
        self.filter_spec = spec
        if self.source_id is None:
            self._recompute()
        else:
            self.refresh()

    def _recompute(self, anchor: tuple | None = None) -> None:
        lines              = self.snapshot.lines if self.snapshot else ()
        self._filtered     = apply_filter(lines, self.filter_spec)
        self._filter_error = regex_fallback(self.filter_spec)
        if anchor is not None:
            pos = relocate_line(lines, *anchor)
            if pos is not None:
                self.view.scroll_offset = bisect.bisect_left(
                    self._filtered, pos, key=lambda l: l.index)
        self._publish()

    def _status(self) -> Status:
        if self.state is TailState.LOADING:
            return Status('loading')
        if self._error is not None:
            return Status('error', self._error.kind)
        if self.state is TailState.IDLE:
            return Status('idle')
        return Status('ready')

    def _end_offset(self) -> int:
        return max(0, len(self._filtered) - self.viewport_height)

    def _clamp(self) -> None:
        k = len(self._filtered)
        if self.view.auto_scroll:
            self.view.scroll_offset = self._end_offset()
        self.view.scroll_offset = max(0, min(self.view.scroll_offset, max(0, k - 1)))

    def _publish(self) -> None:
        self._clamp()
        off = self.view.scroll_offset
        k   = len(self._filtered)
        assert 0 <= off <= max(0, k - 1), f'scroll offset {off} outside {k} lines'
        visible = self._filtered[off:off + self.viewport_height]
        self._window = Window(
            tuple(annotate(l.raw, self.identity, l.index) for l in visible),
            off, k, self._status(), self._filter_error,
        )

    # Scrolling (never re-fetches)

    def scroll(self, delta: int) -> None:
        k   = len(self._filtered)
        off = max(0, min(self.view.scroll_offset + delta, max(0, k - 1)))
        self.view.scroll_offset = off
        self.view.auto_scroll   = off >= self._end_offset()
        self._publish()

    def page(self, pages: int) -> None:
        self.scroll(pages * self.viewport_height)

    def to_top(self) -> None:
        self.view.scroll_offset = 0
        self.view.auto_scroll   = self._end_offset() == 0
        self._publish()

    def to_end(self) -> None:
        self.view.auto_scroll = True
        self._publish()

    def resize(self, height: int) -> None:
        self.viewport_height = max(1, height)
        self._publish()

    # Tail depth

    def set_tail_depth(self, depth: int) -> bool:
        if depth == self.view.tail_depth:
            return False
        self.view.tail_depth = depth
        self.refresh()
        return True

    def step_tail_depth(self, direction: int) -> bool:
        return self.set_tail_depth(step_tail_depth(self.view.tail_depth, direction, self.ladder))

    # Lifecycle

    def activate(self) -> None:
        if self.state is TailState.STOPPED:
            return
        self.active = True
        if self._interval and self._timer is None:
            self._timer = TailTimer(self._interval, lambda: self._post(('tick',)))
        if self._timer is not None and not self.paused:
            self._timer.resume()
        if not self.names_loaded:
            self.load_names()

    def deactivate(self) -> None:
        self.active = False
        if self._timer is not None:
            self._timer.suspend()
        self._cancel()

    def toggle_pause(self) -> bool:
        self.paused = not self.paused
        if self._timer is not None:
            if self.paused or not self.active:
                self._timer.suspend()
            else:
                self._timer.resume()
        return self.paused

    def stop(self) -> None:
        self.active = False
        if self._timer is not None:
            self._timer.stop()
        self._cancel()
        self.state = TailState.STOPPED

    def _cancel(self) -> None:
        # Results of fetches still running are discarded when they arrive.
        self._floor = self._issued + 1
        self._pending.clear()
        if self.state is TailState.LOADING:
            self.state = TailState.READY if self.snapshot else TailState.IDLE
        self._publish()


# Session: dashboard event translation

class Session:
    """
    Translates dashboard events into ViewState mutations and controller
    re-entries. Holds one TailController per category; exactly one is active.
    """

    def __init__(self, controllers: dict, start: Category = Category.JOURNAL):
        assert set(controllers) == set(Category), 'one controller per category'
        self.controllers = controllers
        self.category    = start
        self.filter_spec = FilterSpec()
        self.active.activate()

    @property
    def active(self) -> TailController:
        return self.controllers[self.category]

    # Category switching

    def switch_category(self, forward: bool = True) -> Category:
        self.active.deactivate()
        self.category = self.category.next() if forward else self.category.prev()
        self.active.activate()
        self.active.set_filter(self.filter_spec)
        return self.category

    # Filters

    def set_filter_text(self, text: str) -> None:
        self.filter_spec = FilterSpec(self.filter_spec.mode, text)
        self.active.set_filter(self.filter_spec)

    def cycle_filter_mode(self, forward: bool = True) -> FilterMode:
        mode = self.filter_spec.mode
        mode = mode.next() if forward else mode.prev()
        self.filter_spec = FilterSpec(mode, self.filter_spec.query)
        self.active.set_filter(self.filter_spec)
        return mode

    def set_list_filter(self, text: str) -> None:
        self.active.set_list_filter(text)

    # Events

    def on_key(self, key: str) -> bool:
        ctl = self.active
        if   key == 'tab':
            self.switch_category(True)
        elif key == 'shift tab':
            self.switch_category(False)
        elif key == 'right':
            ctl.select_source(ctl.next_name())
        elif key == 'left':
            ctl.select_source(ctl.prev_name())
        elif key == 'enter':
            ctl.select_source()
        elif key == 'up':
            ctl.scroll(-1)
        elif key == 'down':
            ctl.scroll(1)
        elif key == 'page up':
            ctl.page(-1)
        elif key == 'page down':
            ctl.page(1)
        elif key in ('g', 'home'):
            ctl.to_top()
        elif key in ('G', 'end'):
            ctl.to_end()
        elif key in ('+', '='):
            ctl.step_tail_depth(1)
        elif key in ('-', '_'):
            ctl.step_tail_depth(-1)
        elif key == 'm':
            self.cycle_filter_mode(True)
        elif key == 'M':
            self.cycle_filter_mode(False)
        elif key == ' ':
            ctl.toggle_pause()
        elif key in ('r', 'R', 'ctrl r'):
            ctl.refresh()
        else:
            return False
        return True

    def on_mouse(self, event: str, button: int) -> bool:
        if event != 'mouse press':
            return False
        if button == 4:
            self.active.scroll(-3)
            return True
        if button == 5:
            self.active.scroll(3)
            return True
        return False

    def on_resize(self, height: int) -> None:
        for ctl in self.controllers.values():
            ctl.resize(height)

    def drain(self) -> bool:
        changed = False
        for category, ctl in self.controllers.items():
            # inactive controllers still drain so cancelled results are discarded
            changed |= ctl.drain() and category is self.category
        return changed

    def close(self) -> None:
        for ctl in self.controllers.values():
            ctl.stop()


# Configuration

class Config:
    def __init__(self):
        self.tail_depth       = TAIL_DEPTH
        self.tail_ladder      = TAIL_LADDER
        self.update_interval  = UPDATE_INTERVAL
        self.file_roots: list = list(FILE_ROOTS)
        self.container_socket = CONTAINER_SOCKET
        self.command_timeout  = COMMAND_TIMEOUT

    def update(self, d: dict) -> None:
        # Apply known keys from a JSON object; bad values warn and keep the default.
        if 'tail_ladder' in d:
            ladder = d['tail_ladder']
            if (isinstance(ladder, list) and ladder
                    and all(isinstance(x, int) and x > 0 for x in ladder)):
                self.tail_ladder = tuple(sorted(set(ladder)))
            else:
                _warn(f'tail_ladder must be a list of positive integers, got {ladder!r}')
        if 'tail_depth' in d:
            self.set_tail_depth(d['tail_depth'])
        for key in ('update_interval', 'command_timeout'):
            if key in d:
                val = d[key]
                if isinstance(val, (int, float)) and not isinstance(val, bool) and val > 0:
                    setattr(self, key, float(val))
                else:
                    _warn(f'{key} must be a positive number, got {val!r}')
        if 'file_roots' in d:
            roots = d['file_roots']
            if isinstance(roots, list) and all(isinstance(r, str) for r in roots):
                self.file_roots = [os.path.expanduser(r) for r in roots]
            else:
                _warn(f'file_roots must be a list of paths, got {roots!r}')
        if 'container_socket' in d:
            if isinstance(d['container_socket'], str):
                self.container_socket = d['container_socket']
            else:
                _warn(f'container_socket must be a path, got {d["container_socket"]!r}')
        if self.tail_depth not in self.tail_ladder:
            self.set_tail_depth(self.tail_depth)

    def set_tail_depth(self, depth) -> None:
        if not isinstance(depth, int) or isinstance(depth, bool) or depth <= 0:
            _warn(f'tail_depth must be a positive integer, got {depth!r}')
            return
        if depth not in self.tail_ladder:
            snapped = step_tail_depth(depth, 0, self.tail_ladder)
            _warn(f'tail_depth {depth} is not on the ladder, using {snapped}')
            depth = snapped
        self.tail_depth = depth


def load_config(path=None) -> Config:
    cfg = Config()
    fp  = Path(path) if path else CONFIG_PATH
    if not fp.exists():
        if path:
            _warn(f'{fp}: no such config file, using defaults')
        return cfg
    try:
        with open(fp) as fh:
            data = json.load(fh)
    except (OSError, ValueError) as e:
        _warn(f'{fp.name}: {e}')
        return cfg
    if not isinstance(data, dict):
        _warn(f'{fp.name}: expected a JSON object')
        return cfg
    cfg.update(data)
    return cfg


# Pipe Mode

class Colors:
    """ANSI escapes for pipe output, keyed by palette attribute."""

    RESET   = '\033[0m'
    BY_ATTR = {
        'le':     '\033[0;31m',
        'lw':     '\033[0;33m',
        'li':     '\033[0;32m',
        'ld':     '\033[0;36m',
        'a_addr': '\033[1;36m',
        'a_ts':   '\033[0;35m',
        'a_id':   '\033[1;34m',
        'a_self': '\033[1;32m',
        'a_path': '\033[0;36m',
        'a_num':  '\033[0;34m',
        'hm':     '\033[30;43m',
    }

    @staticmethod
    def colorize(text: str, attr: str) -> str:
        code = Colors.BY_ATTR.get(attr)
        return f'{code}{text}{Colors.RESET}' if code else text


def ansi_line(aline: AnnotatedLine, search_re=None) -> str:
    return ''.join(Colors.colorize(text, attr)
                   for attr, text in make_markup(aline, search_re, lineno=False))


def run_pipe(stream, out, spec: FilterSpec = FilterSpec(), color: bool = False,
             identity: IdentityContext = IdentityContext()) -> int:
    """
    Non-interactive mode: read lines from stream (normally stdin), keep the
    ones matching spec and write them to out as they arrive, optionally
    coloured with the same annotation rules as the dashboard.
    Returns the number of lines written.
    """
    if regex_fallback(spec):
        _warn(f'invalid regex {spec.query!r}, matching literally')
    match     = make_matcher(spec)
    search_re = highlight_pattern(spec) if color else None
    written   = 0
    for raw in stream:
        line = raw.rstrip('\r\n')
        if not match(line):
            continue
        if color:
            line = ansi_line(annotate(line, identity), search_re)
        out.write(line + '\n')
        out.flush()
        written += 1
    return written


# Widgets

class FilterEdit(urwid.Edit):
    # Edit that lets Enter/Esc bubble up to unhandled_input.
    def keypress(self, size, key):
        if key in ('enter', 'esc'):
            return key
        return super().keypress(size, key)


class Unfocusable(urwid.WidgetWrap):
    # Never takes keyboard focus; mouse events still reach the wrapped widget.
    def selectable(self):
        return False


class NameItem(urwid.WidgetWrap):
    # One row of the source list; a left click selects it.
    def __init__(self, index: int, name: str, selected: bool, on_click):
        self._index    = index
        self._on_click = on_click
        attr = 'nm_sel' if selected else 'nm'
        super().__init__(urwid.AttrMap(urwid.Text(f' {name}', wrap='clip'), attr))

    def mouse_event(self, size, event, button, col, row, focus):
        if event == 'mouse press' and button == 1:
            self._on_click(self._index)
            return True
        return False


class LogPane(urwid.WidgetWrap):
    """
    Fixed window of pre-rendered lines. The controller decides which lines
    are visible, so this widget only reports its height and wheel events.
    """

    def __init__(self, on_resize, on_wheel):
        self._pile      = urwid.Pile([])
        self._rows      = None
        self._on_resize = on_resize
        self._on_wheel  = on_wheel
        super().__init__(urwid.Filler(self._pile, valign='top'))

    def set_lines(self, markups: list) -> None:
        self._pile.contents = [
            (urwid.Text(mu or '', wrap='clip'), self._pile.options())
            for mu in (markups or [''])
        ]

    def render(self, size, focus=False):
        if len(size) == 2 and size[1] != self._rows:
            self._rows = size[1]
            self._on_resize(size[1])
        return super().render(size, focus)

    def mouse_event(self, size, event, button, col, row, focus):
        if event == 'mouse press' and button in (4, 5):
            self._on_wheel(event, button)
            return True
        return False


# Main Application
class LogApp:
    # urwid shell: renders the active controller's Window and forwards events.

    NAMES_WIDTH = 34

    def __init__(self, session: Session, loop=None):
        self.session       = session
        self._loop_ref     = loop
        self._filter_alarm = None
        self._list_alarm   = None
        self._build_ui()
        self.redraw()

    # Build
    def _build_ui(self):
        self.w_title = urwid.Text('', wrap='clip')
        self.w_tabs  = urwid.Text('', wrap='clip')

        self.w_mode  = urwid.Text('', wrap='clip')
        self.w_edit  = FilterEdit(caption='')
        self.w_list  = FilterEdit(caption='')
        self.w_err   = urwid.Text('', wrap='clip')
        urwid.connect_signal(self.w_edit, 'postchange',
                             lambda *_: self._on_edit_change())
        urwid.connect_signal(self.w_list, 'postchange',
                             lambda *_: self._on_list_change())

        self.w_filter_cols = urwid.Columns([
            ('pack', urwid.Text(('fl', ' Filter '))),
            ('pack', self.w_mode),
            urwid.AttrMap(self.w_edit, 'fe', 'fe_f'),
            ('pack', self.w_err),
            ('pack', urwid.Text(('fl', '  List '))),
            (24, urwid.AttrMap(self.w_list, 'fe', 'fe_f')),
        ], dividechars=1, focus_column=2)

        self.w_header = urwid.Pile([
            urwid.AttrMap(self.w_title, 'header'),
            urwid.AttrMap(self.w_tabs, 'tab'),
            self.w_filter_cols,
        ])

        self._names_walker = urwid.SimpleFocusListWalker([])
        self.w_names       = urwid.ListBox(self._names_walker)
        self.w_log         = LogPane(on_resize=self._on_resize,
                                     on_wheel=self._on_wheel)

        self._names_box = urwid.LineBox(self.w_names, title='', title_align='left')
        self._log_box   = urwid.LineBox(self.w_log, title='', title_align='left')

        # only the log column takes focus; arrows go to the session
        self._body_cols = urwid.Columns([
            (self.NAMES_WIDTH, Unfocusable(self._names_box)),
            self._log_box,
        ], dividechars=0, focus_column=1)

        self.w_footer = urwid.Text('', wrap='clip')
        self.frame = urwid.Frame(
            body       = self._body_cols,
            header     = self.w_header,
            footer     = urwid.AttrMap(self.w_footer, 'footer'),
            focus_part = 'body',
        )

    # Refresh
    def redraw(self):
        ctl    = self.session.active
        window = ctl.current_window()
        self._refresh_title(ctl, window)
        self._refresh_tabs()
        self._refresh_filter_bar(window)
        self._refresh_names(ctl)
        self._refresh_log(ctl, window)
        self._refresh_footer(ctl, window)

    def _refresh_title(self, ctl: TailController, window: Window):
        status = window.status
        if status.kind == 'loading':
            st = [('loading', ' ◌ loading')]
        elif status.kind == 'error':
            st = [('st_err', f' ⚠ {status.error.replace("_", " ")}')]
        elif ctl.paused:
            st = [('live_off', ' ○ paused')]
        else:
            st = [('live_on', ' ● LIVE')]
        self.w_title.set_text([
            ('header', ' ◉  lazylog  '),
            ('h_dim',  ctl.source_id or '(no source selected)'),
            ('header', '  '),
            *st,
        ])

    def _refresh_tabs(self):
        parts = []
        for cat in Category:
            attr = 'tab_on' if cat is self.session.category else 'tab'
            parts.append((attr, f' {cat.title} '))
            parts.append(('tab', ' '))
        self.w_tabs.set_text(parts)

    def _refresh_filter_bar(self, window: Window):
        self.w_mode.set_text(('fm', f' {self.session.filter_spec.mode.value} '))
        self.w_err.set_text(('ferr', '⚠ invalid regex, matching literally')
                            if window.filter_error else '')

    def _refresh_names(self, ctl: TailController):
        shown = len(ctl.visible_names)
        total = len(ctl.names)
        self._names_box.set_title(f' {ctl.category.title} ({shown}/{total}) ' if total else
                                  f' {ctl.category.title} ')
        if not ctl.names_loaded:
            items = [urwid.AttrMap(urwid.Text(' loading…'), 'nm_dim')]
        elif ctl.names_error:
            items = [urwid.AttrMap(urwid.Text(f' ⚠ {ctl.names_error}', wrap='any'),
                                   'le')]
        elif not ctl.visible_names:
            items = [urwid.AttrMap(urwid.Text(' (nothing found)'), 'nm_dim')]
        else:
            sel   = ctl.view.selected_index
            items = [NameItem(i, name, i == sel, self._on_name_click)
                     for i, name in enumerate(ctl.visible_names)]
        self._names_walker[:] = items
        if ctl.visible_names:
            self.w_names.focus_position = ctl.view.selected_index

    def _refresh_log(self, ctl: TailController, window: Window):
        self._log_box.set_title(f' Logs ({window.total_filtered:,}) ')
        search_re = highlight_pattern(ctl.filter_spec)
        self.w_log.set_lines([make_markup(al, search_re) for al in window.lines])

    def _refresh_footer(self, ctl: TailController, window: Window):
        n_src = len(ctl.snapshot.lines) if ctl.snapshot else 0
        self.w_footer.set_text([
            ('fk', '  q'),   ('footer', ':quit  '),
            ('fk', 'Tab'),   ('footer', ':category  '),
            ('fk', '←→'), ('footer', ':source  '),
            ('fk', '/'),     ('footer', ':filter  '),
            ('fk', 'l'),     ('footer', ':list  '),
            ('fk', 'm'),     ('footer', ':mode  '),
            ('fk', '+/-'),   ('footer', ':tail  '),
            ('fk', 'Space'), ('footer', ':pause  '),
            ('footer', f'  {window.total_filtered:,} / {n_src:,} lines'
                       f'  tail {ctl.view.tail_depth:,}'),
        ])

    # Input
    def _on_edit_change(self):
        if self._loop_ref is None:
            self.session.set_filter_text(self.w_edit.get_edit_text())
            self.redraw()
            return
        if self._filter_alarm is not None:
            self._loop_ref.remove_alarm(self._filter_alarm)
        self._filter_alarm = self._loop_ref.set_alarm_in(0.15, self._on_filter_alarm)

    def _on_filter_alarm(self, loop, user_data):
        self._filter_alarm = None
        self.session.set_filter_text(self.w_edit.get_edit_text())
        self.redraw()

    def _on_list_change(self):
        if self._loop_ref is None:
            self.session.set_list_filter(self.w_list.get_edit_text())
            self.redraw()
            return
        if self._list_alarm is not None:
            self._loop_ref.remove_alarm(self._list_alarm)
        self._list_alarm = self._loop_ref.set_alarm_in(0.15, self._on_list_alarm)

    def _on_list_alarm(self, loop, user_data):
        self._list_alarm = None
        self.session.set_list_filter(self.w_list.get_edit_text())
        self.redraw()

    def _on_name_click(self, index: int):
        ctl = self.session.active
        ctl.select_source(ctl.select_index(index))
        self.redraw()

    def _on_wheel(self, event, button):
        if self.session.on_mouse(event, button):
            self.redraw()

    def _on_resize(self, height: int):
        self.session.on_resize(height)
        window = self.session.active.current_window()
        search_re = highlight_pattern(self.session.active.filter_spec)
        self.w_log.set_lines([make_markup(al, search_re) for al in window.lines])

    def on_wake(self, _data: bytes) -> None:
        # Main-loop-thread callback: apply whatever the workers and timers posted.
        if self.session.drain():
            self.redraw()

    def focus_filter(self, column: int = 2):
        self.frame.focus_position = 'header'
        self.w_header.focus_position      = 2
        self.w_filter_cols.focus_position = column

    def handle_input(self, key):
        if isinstance(key, tuple):
            return
        if self.frame.focus_position == 'header':
            if key in ('enter', 'esc'):
                self.frame.focus_position = 'body'
            return
        if key in ('q', 'Q'):
            raise urwid.ExitMainLoop()
        if key == '/':
            self.focus_filter(2)
            return
        if key == 'l':
            self.focus_filter(5)
            return
        if key == 'esc':
            self.w_edit.set_edit_text('')
            return
        if self.session.on_key(key):
            if key in ('tab', 'shift tab'):
                self.w_list.set_edit_text(self.session.active.view.list_filter_text)
            self.redraw()


# Entry point
def main(argv=None):
    ap = argparse.ArgumentParser(
        description='lazylog: terminal log dashboard',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__)
    ap.add_argument('-c', '--config', metavar='PATH', help='JSON config file')
    ap.add_argument('-n', '--tail', type=int, metavar='LINES',
                    help='initial tail depth (snapped to the ladder)')
    ap.add_argument('-u', '--update', type=float, metavar='SECONDS',
                    help='live tail refresh interval')
    ap.add_argument('-p', '--path', action='append', default=[], metavar='DIR',
                    help='extra directory to search for log files (repeatable)')
    ap.add_argument('-s', '--start', choices=[c.value for c in Category],
                    default=Category.JOURNAL.value, help='category to open first')
    ap.add_argument('--socket', metavar='PATH',
                    help='container engine socket (Docker or Podman)')

    pipe = ap.add_argument_group('pipe mode', 'filter or colour stdin instead of opening the dashboard')
    pipe.add_argument('-C', '--color', action='store_true',
                      help='colour lines read from stdin')
    query = pipe.add_mutually_exclusive_group()
    query.add_argument('-f', '--fuzzy', metavar='QUERY',
                       help='print stdin lines matching QUERY fuzzily')
    query.add_argument('-r', '--regex', metavar='PATTERN',
                       help='print stdin lines matching PATTERN (case-insensitive)')
    args = ap.parse_args(argv)

    if args.color or args.fuzzy is not None or args.regex is not None:
        if args.fuzzy is not None:
            spec = FilterSpec(FilterMode.FUZZY, args.fuzzy)
        elif args.regex is not None:
            spec = FilterSpec(FilterMode.REGEX, args.regex)
        else:
            spec = FilterSpec()
        identity = load_identity() if args.color else IdentityContext()
        run_pipe(sys.stdin, sys.stdout, spec, color=args.color, identity=identity)
        return

    cfg = load_config(args.config)
    if args.tail is not None:
        cfg.set_tail_depth(args.tail)
    if args.update is not None:
        if args.update > 0:
            cfg.update_interval = args.update
        else:
            _warn(f'--update must be positive, got {args.update}')
    cfg.file_roots.extend(os.path.expanduser(p) for p in args.path)
    if args.socket:
        cfg.container_socket = args.socket

    identity   = load_identity()
    collectors = build_collectors(cfg)

    wake_fd: list = []

    def _notify():
        if wake_fd:
            try:   os.write(wake_fd[0], b'x')
            except OSError: pass

    controllers = {
        cat: TailController(
            collectors[cat], identity,
            tail_depth    = cfg.tail_depth,
            ladder        = cfg.tail_ladder,
            tick_interval = cfg.update_interval,
            notify        = _notify,
        )
        for cat in Category
    }

    app_ref: list = []

    def _wake(data: bytes) -> None:
        if app_ref:
            app_ref[0].on_wake(data)

    def _unhandled(key):
        if app_ref:
            app_ref[0].handle_input(key)

    # the pipe must exist before the first worker can post
    loop = urwid.MainLoop(
        urwid.SolidFill(' '),
        palette         = PALETTE,
        unhandled_input = _unhandled,
        handle_mouse    = True,
    )
    wake_fd.append(loop.watch_pipe(_wake))

    session = Session(controllers, start=Category(args.start))
    app     = LogApp(session, loop)
    app_ref.append(app)
    loop.widget = app.frame

    try:
        loop.run()
    finally:
        session.close()


if __name__ == '__main__':
    main()
