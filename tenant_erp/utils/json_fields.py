"""Tolerant (de)serialization for JSON stored in text columns."""
import json
import logging

logger = logging.getLogger(__name__)


def load_json_object(raw, context=''):
    """
    Decode a JSON object stored as text.

    Malformed payloads and non-object values are logged and treated as an
    empty dict so a corrupt row never breaks a request.
    """
    if raw is None or raw == '':
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"[JSON] Malformed JSON in {context or 'column'}: {e}")
        return {}
    if value is None or value == []:
        return {}
    if not isinstance(value, dict):
        logger.warning(f"[JSON] Expected object in {context or 'column'}, got {type(value).__name__}")
        return {}
    return value


def dump_json_object(value):
    """Encode a dict for storage; empty trees are stored as NULL."""
    if not value:
        return None
    return json.dumps(value)
