#!/usr/bin/env python3
"""
Simulated AI mainframe terminal.

Plays a scripted boot sequence (instant lines, timed pauses and typewriter
reveals) and then reads commands at a raw-mode prompt. A few keywords run
locally; everything else is sent to the hosted assistant and the formatted
reply is printed back into the terminal.
"""

import os
import sys
import termios
import time
import tty
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from html.parser import HTMLParser
from typing import Optional

import yaml

from assistant_client import AssistantClient, AssistantQueryPipeline
from keystroke_audio import KeystrokeAudio, KeystrokeCue
from preferences import (
    PreferenceStore,
    PreferenceStoreError,
    load_history,
    load_sound_enabled,
    save_history,
    save_sound_enabled,
)

CONFIG_FILE = "terminal_config.yaml"
CONFIG_ENV = "NEURAL_TERMINAL_CONFIG"
PROCESS_START = time.time()

HELP_TEXT = (
    "Available commands:\n"
    "  clear  - Clear the terminal\n"
    "  help   - Show this help message\n"
    "  status - Show system status\n"
    "  reset  - Rerun boot sequence\n"
    "  sound  - Toggle keystroke sounds\n"
    "\nType any other text to interact with the AI assistant."
)

STATUS_TEXT = (
    "System Status: OPERATIONAL\n"
    "Memory Usage: 42.3%\n"
    "CPU Load: 28.7%\n"
    "Temperature: 19.2°C\n"
    "Active Connections: 1\n"
    "Uptime: "
)

DEFAULT_BOOT_SCRIPT = [
    {"text": "BIOS Version 2.15.2301\nCopyright (C) 2024 Advanced Neural Systems, Inc.\n\n", "delay": 200},
    {"text": "Performing memory test...\n", "delay": 100},
    {"text": "8TB DDR5-4800 ECC RAM - [", "delay": 50},
    {"text": "████████████████████████████████", "typewriter": True, "delay": 50},
    {"text": "] OK\n\n", "delay": 100},
    {"text": "Detecting primary hardware...\n", "delay": 200},
    {"text": "CPU: AMD EPYC 9654 96-Core Processor\n", "delay": 50},
    {"text": "GPU Array: Detecting", "delay": 50},
    {"text": "...", "typewriter": True, "delay": 100},
    {"text": " 32x NVIDIA H100 - 80GB HBM3\n", "delay": 50},
    {"text": "Storage: 256TB NVMe Gen5 Array\n\n", "delay": 50},
    {"text": "POST in progress", "delay": 100},
    {"text": "...\n", "typewriter": True, "delay": 100},
    {
        "text": (
            "CPU Temperature: 18.2°C [OK]\nMemory Controller [OK]\nPrimary Bus [OK]\n"
            "Neural Processing Units [OK]\nQuantum Coprocessor Interface [OK]\n\n"
        ),
        "delay": 200,
    },
    {"text": "Initializing Neural Architecture...\n", "delay": 200},
    {
        "text": (
            "Loading base weights.....[OK]\nVerifying transformer blocks.....[OK]\n"
            "Initializing attention heads.....[OK]\n\n"
        ),
        "delay": 300,
    },
    {"text": "Loading distributed training modules...\n", "delay": 200},
    {
        "text": (
            "Node clustering.....[OK]\nTesting inter-node latency.....[WARNING]\n"
            "Node 7 unresponsive - rerouting.....[OK]\n\n"
        ),
        "delay": 300,
        "style": "warning",
    },
    {"text": "Initializing quantum subsystems...\n", "delay": 200},
    {
        "text": (
            "Quantum state preparation.....[OK]\nDecoherence compensation.....[OK]\n"
            "Entanglement verification.....[OK]\n\n"
        ),
        "delay": 300,
    },
    {"text": "Starting primary AI kernel...\n", "delay": 200},
    {
        "text": (
            "Loading base consciousness matrix.....[OK]\nInitializing ethical constraints.....[OK]\n"
            "Engaging natural language interface.....[OK]\n\n"
        ),
        "delay": 300,
    },
    {"text": "System Status: OPERATIONAL\n", "delay": 100, "style": "success"},
    {"text": "Current Load: 2.3%\nTemperature: 18.5°C\nPower Draw: 142.8 kW\n\n", "delay": 100},
]


def normalize_color(value, default):
    if isinstance(value, (list, tuple)) and len(value) >= 3:
        try:
            return tuple(max(0, min(int(c), 255)) for c in value[:3])
        except (TypeError, ValueError):
            return default
    return default


def _ansi_sequence(color, code):
    if not color or len(color) < 3:
        return ""
    try:
        r, g, b = color[:3]
    except (TypeError, ValueError):
        return ""
    return f"\x1b[{code};2;{r};{g};{b}m"


def load_config(path=CONFIG_FILE):
    defaults = {
        "terminal": {
            "prompt_prefix": "AI-SYSTEM-001>",
            "use_ansi": True,
            "text": (51, 255, 102),
            "prompt": (51, 255, 102),
            "styles": {
                "error": (255, 85, 85),
                "warning": (255, 204, 0),
                "success": (80, 250, 123),
                "bright": (214, 255, 224),
                "dim": (70, 140, 90),
                "code": (150, 210, 255),
            },
        },
        "boot": {
            "script": DEFAULT_BOOT_SCRIPT,
            "delay_scale": 1.0,
        },
        "assistant": {
            "base_url": "https://api.openai.com/v1",
            "assistant_id": None,
            "assistant_id_env": "ASSISTANT_ID",
            "key_env": "OPENAI_API_KEY",
            "key_file": "openai_api_key.txt",
            "timeout": 30,
            "poll_interval": 1.0,
            "max_poll_attempts": 50,
            "wrap_width": 80,
        },
        "preferences": {
            "path": "terminal_preferences.json",
        },
        "sounds": {
            "keystroke": None,
            "frequency": 480,
            "duration": 0.03,
            "volume": 0.08,
        },
        "logging": {
            "enabled": True,
            "path": "neural_terminal.log",
        },
        "quiet": False,
    }
    if not path or not os.path.exists(path):
        return defaults
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
    except (OSError, yaml.YAMLError):
        return defaults
    if not isinstance(data, dict):
        return defaults
    terminal = defaults["terminal"].copy()
    if "terminal" in data:
        terminal_config = data["terminal"] or {}
        terminal["prompt_prefix"] = terminal_config.get("prompt_prefix", terminal["prompt_prefix"])
        terminal["use_ansi"] = bool(terminal_config.get("use_ansi", terminal["use_ansi"]))
        for key in ("text", "prompt"):
            terminal[key] = normalize_color(terminal_config.get(key), terminal[key])
        styles = terminal["styles"].copy()
        for name, color in (terminal_config.get("styles") or {}).items():
            styles[name] = normalize_color(color, styles.get(name))
        terminal["styles"] = styles
    boot = defaults["boot"].copy()
    if "boot" in data:
        boot_data = data["boot"] or {}
        if isinstance(boot_data.get("script"), list):
            boot["script"] = boot_data["script"]
        boot["delay_scale"] = float(boot_data.get("delay_scale", boot["delay_scale"]))
    assistant = defaults["assistant"].copy()
    if "assistant" in data:
        assistant_data = data["assistant"] or {}
        assistant.update({k: v for k, v in assistant_data.items() if v is not None})
    preferences = defaults["preferences"].copy()
    if "preferences" in data:
        preferences.update(data["preferences"] or {})
    sounds = defaults["sounds"].copy()
    if "sounds" in data:
        sounds.update(data["sounds"] or {})
    logging_config = defaults["logging"].copy()
    if "logging" in data:
        logging_data = data["logging"] or {}
        for key in logging_config:
            logging_config[key] = logging_data.get(key, logging_config[key])
    return {
        "terminal": terminal,
        "boot": boot,
        "assistant": assistant,
        "preferences": preferences,
        "sounds": sounds,
        "logging": logging_config,
        "quiet": bool(data.get("quiet", defaults["quiet"])),
    }


class EventLogger:
    def __init__(self, config=None):
        config = config or {}
        self.enabled = bool(config.get("enabled", True))
        self.path = config.get("path")
        if not self.enabled or not self.path:
            self.enabled = False
            self.path = None
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def log(self, event, **details):
        if not self.enabled:
            return
        timestamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())
        detail_text = " ".join(f"{key}={details[key]}" for key in sorted(details))
        line = " ".join(part for part in (timestamp, event, detail_text) if part)
        try:
            with open(self.path, "a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except OSError:
            pass


class NullLogger:
    def log(self, event, **details):
        return


@dataclass(frozen=True)
class BootLine:
    text: str
    delay: float = 0
    typewriter: bool = False
    style: Optional[str] = None
    markup: bool = False


def build_boot_script(entries):
    script = []
    for entry in entries or []:
        if not isinstance(entry, dict) or "text" not in entry:
            continue
        script.append(
            BootLine(
                text=str(entry["text"]),
                delay=float(entry.get("delay", 0)),
                typewriter=bool(entry.get("typewriter", False)),
                style=entry.get("style"),
                markup=bool(entry.get("markup", False)),
            )
        )
    return tuple(script)


@dataclass
class OutputBlock:
    text: str
    style: Optional[str] = None
    markup: bool = False


class _MarkupRenderer(HTMLParser):
    """Turns reply markup (spans and code-block divs) into terminal text."""

    def __init__(self, styled):
        super().__init__(convert_charrefs=True)
        self.styled = styled
        self.pieces = []
        self.styles = []
        self.ended_line = True
        self.break_pending = False

    def handle_starttag(self, tag, attrs):
        classes = (dict(attrs).get("class") or "").split()
        style = None
        if tag == "div" and "code-block" in classes:
            style = "code"
            self._break()
        elif tag == "span" and classes:
            style = classes[0]
        self.styles.append(style or (self.styles[-1] if self.styles else None))

    def handle_endtag(self, tag):
        if self.styles:
            self.styles.pop()
        if tag == "div":
            self.break_pending = True

    def handle_data(self, data):
        if not data:
            return
        if self.break_pending and not data.startswith("\n"):
            self._break()
        self.break_pending = False
        style = self.styles[-1] if self.styles else None
        self.pieces.append(self.styled(data, style))
        self.ended_line = data.endswith("\n")

    def _break(self):
        if not self.ended_line:
            self.pieces.append("\n")
            self.ended_line = True

    def render(self, markup):
        self.feed(markup)
        self.close()
        if self.break_pending:
            self._break()
        return "".join(self.pieces)


class RevealHandle:
    def __init__(self, output, block):
        self.output = output
        self.block = block

    def append(self, text):
        self.block.text += text
        self.output.emit(self.output.styled(text, self.block.style))


class TerminalOutput:
    def __init__(self, terminal_config=None, quiet=False, stream=None):
        terminal_config = terminal_config or {}
        self.use_ansi = bool(terminal_config.get("use_ansi", True))
        self.quiet = quiet
        self.stream = stream
        self.text_sequence = _ansi_sequence(terminal_config.get("text"), 38) if self.use_ansi else ""
        self.prompt_sequence = _ansi_sequence(terminal_config.get("prompt"), 38) if self.use_ansi else ""
        self.style_sequences = {}
        if self.use_ansi:
            for name, color in (terminal_config.get("styles") or {}).items():
                self.style_sequences[name] = _ansi_sequence(color, 38)
        self.reset_sequence = "\x1b[0m" if self.use_ansi else ""
        self.blocks = []

    def emit(self, payload):
        if self.quiet or not payload:
            return
        stream = self.stream or sys.stdout
        stream.write(payload)
        stream.flush()

    def styled(self, text, style=None):
        sequence = self.style_sequences.get(style) or self.text_sequence
        if not sequence:
            return text
        return f"{sequence}{text}{self.reset_sequence}"

    def prompt_text(self, prefix):
        if not self.prompt_sequence:
            return f"{prefix} "
        return f"{self.prompt_sequence}{prefix}{self.reset_sequence} "

    def write(self, text, style=None):
        block = OutputBlock(text, style)
        self.blocks.append(block)
        self.emit(self.styled(text, style))
        return block

    def write_markup(self, markup):
        block = OutputBlock(markup, markup=True)
        self.blocks.append(block)
        self.emit(_MarkupRenderer(self.styled).render(markup))
        return block

    def open_block(self, style=None):
        block = OutputBlock("", style)
        self.blocks.append(block)
        return RevealHandle(self, block)

    def clear(self):
        self.blocks = []
        if self.use_ansi:
            self.emit("\x1b[2J\x1b[H")

    def scroll_to_end(self):
        if self.quiet:
            return
        (self.stream or sys.stdout).flush()

    @property
    def text(self):
        """Everything currently on screen, without colour or markup."""
        parts = []
        for block in self.blocks:
            if block.markup:
                parts.append(_MarkupRenderer(lambda text, style: text).render(block.text))
            else:
                parts.append(block.text)
        return "".join(parts)


KEY_ENTER = "enter"
KEY_BACKSPACE = "backspace"
KEY_UP = "up"
KEY_DOWN = "down"
KEY_EOF = "eof"


class HistoryDirection(Enum):
    OLDER = "older"
    NEWER = "newer"


def decode_escape_sequence(sequence):
    if not sequence or sequence[0] not in ("[", "O"):
        return None
    if sequence.endswith("A"):
        return KEY_UP
    if sequence.endswith("B"):
        return KEY_DOWN
    return None


class InputLine:
    """A single editable prompt line read in raw mode."""

    def __init__(self, prompt, output, on_keystroke=None, on_history=None, stdin=None):
        self.prompt = prompt
        self.output = output
        self.on_keystroke = on_keystroke or (lambda: None)
        self.on_history = on_history or (lambda direction: None)
        self.stdin = stdin
        self.buffer = []
        self.active = False

    @property
    def value(self):
        return "".join(self.buffer)

    def open(self):
        stdin = self.stdin or sys.stdin
        if _is_tty(stdin):
            termios.tcflush(stdin.fileno(), termios.TCIFLUSH)
        self.active = True
        self.output.emit(self.prompt)

    def close(self):
        if not self.active:
            return
        self.active = False
        self.output.emit("\r\x1b[2K" if self.output.use_ansi else "\n")

    def replace(self, text):
        self.buffer = list(text)
        if self.output.use_ansi:
            self.output.emit(f"\r\x1b[2K{self.prompt}{self.value}")

    def handle_key(self, key):
        """Apply one decoded key; True means the line was submitted."""
        if key is None:
            return False
        if key == KEY_ENTER:
            return True
        if key == KEY_UP:
            self.on_history(HistoryDirection.OLDER)
            return False
        if key == KEY_DOWN:
            self.on_history(HistoryDirection.NEWER)
            return False
        if key == KEY_EOF:
            if not self.buffer:
                raise EOFError
            return False
        self.on_keystroke()
        if key == KEY_BACKSPACE:
            if self.buffer:
                self.buffer.pop()
                self.output.emit("\b \b")
            return False
        if len(key) == 1 and key.isprintable():
            self.buffer.append(key)
            self.output.emit(key)
        return False

    def read(self):
        stdin = self.stdin or sys.stdin
        if not _is_tty(stdin):
            line = stdin.readline()
            if not line:
                raise EOFError
            self.buffer = list(line.rstrip("\r\n"))
            return self.value
        fd = stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        try:
            tty.setraw(fd)
            while not self.handle_key(self._read_key(stdin)):
                pass
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
        return self.value

    def _read_key(self, stdin):
        ch = stdin.read(1)
        if not ch:
            raise EOFError
        if ch in ("\r", "\n"):
            return KEY_ENTER
        if ch == "\x03":
            raise KeyboardInterrupt
        if ch == "\x04":
            return KEY_EOF
        if ch in ("\x7f", "\b"):
            return KEY_BACKSPACE
        if ch == "\x1b":
            return decode_escape_sequence(self._read_escape(stdin))
        return ch

    def _read_escape(self, stdin):
        lead = stdin.read(1)
        if lead not in ("[", "O"):
            return lead
        sequence = lead
        while True:
            ch = stdin.read(1)
            if not ch:
                break
            sequence += ch
            if ch.isalpha() or ch == "~":
                break
        return sequence


def _is_tty(stream):
    isatty = getattr(stream, "isatty", None)
    if not callable(isatty):
        return False
    try:
        return bool(isatty())
    except (OSError, ValueError):
        return False


@contextmanager
def input_suppressed(stream=None):
    """Keep keys typed while the terminal is busy off the screen.

    Echo and line buffering are switched off; the pending keys are flushed
    when the next input line opens.
    """
    stream = stream or sys.stdin
    if not _is_tty(stream):
        yield
        return
    fd = stream.fileno()
    old_settings = termios.tcgetattr(fd)
    quiet_settings = list(old_settings)
    quiet_settings[3] = old_settings[3] & ~(termios.ECHO | termios.ICANON)
    termios.tcsetattr(fd, termios.TCSADRAIN, quiet_settings)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)


class BootSequencer:
    def __init__(self, output, cue, delay_scale=1.0, logger=None):
        self.output = output
        self.cue = cue
        self.delay_scale = float(delay_scale)
        self.logger = logger or NullLogger()

    def play(self, script):
        for line in script:
            self.display_line(line)

    def display_line(self, line):
        delay = line.delay * self.delay_scale / 1000.0
        if line.markup:
            self.output.write_markup(line.text)
        elif line.typewriter:
            block = self.output.open_block(line.style)
            for unit in line.text:
                block.append(unit)
                self.cue.play()
                self._wait(delay)
        else:
            self.output.write(line.text, line.style)
        self._wait(delay)

    def _wait(self, seconds):
        if seconds > 0:
            time.sleep(seconds)


class DispatcherState(Enum):
    BOOTING = "booting"
    IDLE = "idle"
    BUSY = "busy"


class CommandKind(Enum):
    CLEAR = "clear"
    HELP = "help"
    STATUS = "status"
    RESET = "reset"
    SOUND = "sound"
    QUERY = "query"


LOCAL_COMMANDS = {kind.value: kind for kind in CommandKind if kind is not CommandKind.QUERY}


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    text: str


def classify_command(raw):
    return Command(LOCAL_COMMANDS.get(raw.lower(), CommandKind.QUERY), raw)


def format_uptime(seconds):
    uptime = max(0, int(seconds))
    hours = uptime // 3600
    minutes = (uptime % 3600) // 60
    return f"{hours}h {minutes}m {uptime % 60}s"


@dataclass
class SessionState:
    history: list = field(default_factory=list)
    history_index: int = 0
    draft: str = ""
    sound_enabled: bool = False
    mode: DispatcherState = DispatcherState.BOOTING

    def record(self, command):
        self.history.append(command)
        self.history_index = len(self.history)
        self.draft = ""

    def older(self, current_text):
        if self.history_index <= 0:
            return None
        if self.history_index == len(self.history):
            self.draft = current_text
        self.history_index -= 1
        return self.history[self.history_index]

    def newer(self):
        if self.history_index >= len(self.history):
            return None
        self.history_index += 1
        if self.history_index == len(self.history):
            return self.draft
        return self.history[self.history_index]


class CommandDispatcher:
    def __init__(self, config, output, pipeline, store, audio=None, logger=None, stdin=None):
        self.config = config
        self.output = output
        self.pipeline = pipeline
        self.store = store
        self.stdin = stdin
        self.logger = logger or NullLogger()
        self.prompt_prefix = config["terminal"].get("prompt_prefix", "AI-SYSTEM-001>")
        history = load_history(store)
        self.session = SessionState(
            history=history,
            history_index=len(history),
            sound_enabled=load_sound_enabled(store),
        )
        self.cue = KeystrokeCue(
            audio or KeystrokeAudio(config.get("sounds"), self.logger),
            lambda: self.session.sound_enabled,
        )
        boot_config = config.get("boot", {})
        self.boot_script = build_boot_script(boot_config.get("script", DEFAULT_BOOT_SCRIPT))
        self.sequencer = BootSequencer(self.output, self.cue, boot_config.get("delay_scale", 1.0), self.logger)
        self.started_at = PROCESS_START
        self.input_line = None
        self.handlers = {
            CommandKind.CLEAR: self._clear,
            CommandKind.HELP: self._help,
            CommandKind.STATUS: self._status,
            CommandKind.SOUND: self._toggle_sound,
            CommandKind.QUERY: self._query,
        }

    @property
    def state(self):
        return self.session.mode

    def transition(self, new_state):
        if new_state == self.session.mode:
            return
        old_state = self.session.mode.value
        self.session.mode = new_state
        self.logger.log("state_change", from_state=old_state, to_state=new_state.value)

    def start(self):
        self.pipeline.initialize()
        self.boot()

    def boot(self):
        self.remove_input_line()
        self.transition(DispatcherState.BOOTING)
        self.logger.log("boot_start", lines=len(self.boot_script))
        with input_suppressed(self.stdin):
            self.sequencer.play(self.boot_script)
        self.logger.log("boot_complete")
        self.create_input_line()

    def remove_input_line(self):
        if self.input_line:
            self.input_line.close()
            self.input_line = None

    def create_input_line(self):
        self.remove_input_line()
        self.input_line = InputLine(
            self.output.prompt_text(self.prompt_prefix),
            self.output,
            on_keystroke=self.cue.play,
            on_history=self.navigate_history,
            stdin=self.stdin,
        )
        self.transition(DispatcherState.IDLE)
        self.input_line.open()

    def submit(self, raw):
        if self.session.mode is not DispatcherState.IDLE:
            self.logger.log("input_ignored", state=self.session.mode.value)
            return
        if not raw.strip():
            self.create_input_line()
            return
        self.transition(DispatcherState.BUSY)
        self.remove_input_line()
        self.output.write(f"{self.prompt_prefix} {raw}\n")
        self.session.record(raw)
        self._persist(save_history, self.session.history)
        command = classify_command(raw)
        self.logger.log("command", command=raw, kind=command.kind.value)
        if command.kind is CommandKind.RESET:
            self.reset()
            return
        with input_suppressed(self.stdin):
            self.handlers[command.kind](command)
        self.create_input_line()
        self.output.scroll_to_end()

    def navigate_history(self, direction):
        if self.session.mode is not DispatcherState.IDLE or self.input_line is None:
            return
        if direction is HistoryDirection.OLDER:
            text = self.session.older(self.input_line.value)
        else:
            text = self.session.newer()
        if text is None:
            return
        self.input_line.replace(text)
        self.logger.log("history_navigate", direction=direction.value, index=self.session.history_index)

    def reset(self):
        self.output.clear()
        self.boot()

    def run(self):
        while True:
            if self.input_line is None:
                self.create_input_line()
            line = self.input_line.read()
            self.input_line.close()
            self.submit(line)

    def _persist(self, saver, value):
        try:
            saver(self.store, value)
        except PreferenceStoreError as exc:
            self.logger.log("preferences_write_failed", reason=str(exc))

    def _system_message(self, message):
        self.output.write(message + "\n", "bright")

    def _clear(self, command):
        self.output.clear()

    def _help(self, command):
        self._system_message(HELP_TEXT)

    def _status(self, command):
        self._system_message(STATUS_TEXT + format_uptime(time.time() - self.started_at))

    def _toggle_sound(self, command):
        self.session.sound_enabled = not self.session.sound_enabled
        self._persist(save_sound_enabled, self.session.sound_enabled)
        self.logger.log("sound_toggle", enabled=self.session.sound_enabled)
        state = "enabled" if self.session.sound_enabled else "disabled"
        self._system_message(f"Keystroke sounds {state}")

    def _query(self, command):
        self.pipeline.query(command.text)


def build_terminal(config, logger=None):
    logger = logger or NullLogger()
    output = TerminalOutput(config["terminal"], quiet=config.get("quiet", False))
    client = AssistantClient(config.get("assistant"), logger=logger)
    pipeline = AssistantQueryPipeline(client, output, config.get("assistant"), logger=logger)
    store = PreferenceStore(config["preferences"]["path"], logger=logger)
    return CommandDispatcher(config, output, pipeline, store, logger=logger)


def main():
    config = load_config(os.environ.get(CONFIG_ENV, CONFIG_FILE))
    logger = EventLogger(config.get("logging"))
    logger.log("start", prompt=config["terminal"]["prompt_prefix"])
    dispatcher = build_terminal(config, logger)
    dispatcher.output.clear()
    try:
        dispatcher.start()
        dispatcher.run()
    except (EOFError, KeyboardInterrupt):
        dispatcher.output.emit("\n")
    finally:
        logger.log("stop")


if __name__ == "__main__":
    main()
