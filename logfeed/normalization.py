"""Message clean-up helpers shared by the classification rules."""

import math
import re
from typing import Any, Optional


# ANSI colour and cursor escape sequences (CSI and OSC forms)
ANSI_PATTERN = re.compile(r'\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07]*\x07')

# key=value tokens as written by the agent ("runId=abc model=gpt-4")
KEY_VALUE_PATTERN = re.compile(r'(?<![\w.-])([A-Za-z_][\w.-]*)=("[^"]*"|\S+)')

# Phone numbers, optionally with a chat-network suffix (+15551234567@s.whatsapp.net)
PHONE_PATTERN = re.compile(r'\+?\d[\d\s().-]{5,}\d')
JID_SUFFIX_PATTERN = re.compile(r'@[\w.-]+$')


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from a message."""
    return ANSI_PATTERN.sub('', text)


def extract_key_values(message: str) -> dict[str, str]:
    """
    Collect the key=value tokens of a message.
    
    Later occurrences of a key win. Quoted values are unquoted.
    """
    values = {}
    for match in KEY_VALUE_PATTERN.finditer(message):
        value = match.group(2)
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            value = value[1:-1]
        values[match.group(1)] = value.rstrip(',;')
    return values


def strip_model_vendor(model: str) -> str:
    """
    Drop the provider prefix from a model identifier.
    
    "anthropic/claude-opus-4" becomes "claude-opus-4"; tags such as
    "llama3:8b" are kept.
    """
    name = model.strip().strip('"\'')
    return name.rsplit('/', 1)[-1]


def humanize_duration(value: Any) -> Optional[str]:
    """
    Convert a duration in milliseconds into a short human unit.
    
    Returns None if the value is not a usable number.
    """
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return None
    
    if not math.isfinite(ms) or ms < 0:
        return None
    
    if ms < 1000:
        return f"{int(round(ms))}ms"
    
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def clean_recipient(value: Any) -> Optional[str]:
    """
    Normalize a recipient into something readable.
    
    Chat ids such as "15551234567@s.whatsapp.net" lose their network
    suffix; anything that is not a non-empty string yields None.
    """
    if not isinstance(value, str):
        return None
    
    recipient = JID_SUFFIX_PATTERN.sub('', value.strip())
    if recipient.isdigit():
        recipient = '+' + recipient
    return recipient or None


def find_phone_number(message: str) -> Optional[str]:
    """Return the first phone-number-like token of a message."""
    match = PHONE_PATTERN.search(message)
    if not match:
        return None
    return re.sub(r'[\s().-]', '', match.group())


def first_text(*values: Any) -> str:
    """Return the first value that is a non-blank string, stripped."""
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ''
