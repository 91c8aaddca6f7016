# compositional_tools/logger.py
"""
Logging functionality for compositional_tools.
"""

import os
import logging

LOGGER_NAME = 'compositional_tools'


def setup_logger(log_file=None, log_level=logging.INFO):
    """
    Setup the package logger.
    
    Args:
        log_file: Path to log file (optional)
        log_level: Logging level (default: INFO)
        
    Returns:
        Logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    
    # Remove any existing handlers to avoid duplication
    if logger.handlers:
        logger.handlers = []
    
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    
    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    logger.addHandler(ch)
    
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)
            
        fh = logging.FileHandler(log_file)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        logger.addHandler(fh)
    
    return logger
