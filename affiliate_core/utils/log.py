"""
Structured logging utility for attribution and payout flows
"""
import logging
import json
from datetime import datetime
from typing import Dict, Any, Optional


def log_affiliate_event(
    logger: logging.Logger,
    step: str,
    ok: bool,
    partner_id: Optional[str] = None,
    ref: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None
):
    """
    Log an affiliate event with structured format:
    {"at":"affiliate","step":"...","pid":"...","ref":"...","ok":true/false,"extra":{...}}
    """
    log_data = {
        "at": "affiliate",
        "step": step,
        "pid": partner_id,
        "ref": ref,
        "ok": ok,
        "ts": datetime.utcnow().isoformat()
    }
    if extra:
        log_data["extra"] = extra

    log_msg = json.dumps(log_data, separators=(',', ':'), default=str)

    if ok:
        logger.info(log_msg)
    else:
        logger.warning(log_msg)
