# Overview: Logger lookup for service code running with or without an app context.

import logging

from flask import current_app, has_app_context


def get_logger(name: str = "stockledger") -> logging.Logger:
    if has_app_context():
        return current_app.logger
    return logging.getLogger(name)
