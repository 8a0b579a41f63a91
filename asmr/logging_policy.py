"""Logging setup shared by every entry point. Importing this module sends
log records to stdout with an emoji per level, and routes warnings and
uncaught exceptions through logging."""

import argparse
import contextlib
import logging
import re
import sys
import traceback
import warnings

argument_parser = argparse.ArgumentParser(add_help=False)
argument_group = argument_parser.add_argument_group("logging")
argument_group.add_argument("--quiet", action="store_true")
argument_group.add_argument("--debug", action="store_true")

# Checked in order; the first level at or below the record's wins.
_LEVEL_TAGS = [
    (logging.CRITICAL, "💥  "),
    (logging.ERROR, "🔥  "),
    (logging.WARNING, "⚠️   "),
    (logging.INFO, ""),
]
_DEBUG_TAG = "🕸  "


def apply_args(args):
    """Sets the root log level from --quiet / --debug."""

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.WARNING)


@contextlib.contextmanager
def collecting_warnings(allow_regex=None):
    """Yields a list that collects each warning raised in the block, shown
    with a stack trace. Warnings fully matching allow_regex are expected
    data problems; they are logged at info level and not collected."""

    collected = []
    regex = re.compile(allow_regex) if allow_regex else None
    saved = warnings.showwarning
    expected = 0

    def handler(message, category, filename, lineno, file=None, line=None):
        nonlocal expected
        text = str(message).strip()
        if regex is not None and regex.fullmatch(text):
            expected += 1
            logging.info(f"🟡   {text}")
            return

        collected.append(text)
        saved(message, category, filename, lineno, file, line)
        traceback.print_stack(file=sys.stdout)
        print()

    warnings.showwarning = handler
    try:
        yield collected
    finally:
        warnings.showwarning = saved
        if expected or collected:
            logging.info(
                f"Warnings: {expected} expected, {len(collected)} unexpected"
            )


def _level_tag(levelno):
    if levelno < logging.INFO:
        return _DEBUG_TAG
    return next(tag for level, tag in _LEVEL_TAGS if levelno >= level)


class _LogFormatter(logging.Formatter):
    """Tags each message with its level emoji and short logger name,
    leaving surrounding blank lines where the caller put them."""

    def format(self, record):
        message = record.getMessage()
        stripped = message.lstrip()
        body = stripped.rstrip()
        lead = message[: len(message) - len(stripped)]
        tail = stripped[len(body) :]

        if record.name != "root":
            body = f"{record.name.removeprefix('asmr.')}: {body}"
        body = _level_tag(record.levelno) + body

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        details = [d for d in (record.exc_text, record.stack_info) if d]
        return lead + "\n".join([body.strip()] + details) + tail


def _sys_exception_hook(exc_type, exc_value, exc_tb):
    if issubclass(exc_type, KeyboardInterrupt):
        logging.critical("*** KeyboardInterrupt (^C)! ***")
    else:
        exc_info = (exc_type, exc_value, exc_tb)
        logging.critical("Uncaught exception", exc_info=exc_info)


def _warning_hook(message, category, filename, lineno, file=None, line=None):
    logging.warning(str(message).strip())


# Initialize on import.
_log_handler = logging.StreamHandler(stream=sys.stdout)
_log_handler.setFormatter(_LogFormatter())
logging.basicConfig(level=logging.INFO, handlers=[_log_handler])
sys.excepthook = _sys_exception_hook
warnings.showwarning = _warning_hook
