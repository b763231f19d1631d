# config.py
import os

# Find the absolute path of the directory where this file is located
basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    # --- Prediction data ---
    # Directory or http(s) base URL holding predictions.json and patients/<id>/
    PREDICTIONS_ROOT = os.environ.get(
        'SHIA_PREDICTIONS_ROOT', os.path.join(os.path.dirname(basedir), 'output_predictions'))
    FETCH_TIMEOUT = float(os.environ.get('SHIA_FETCH_TIMEOUT', '10'))

    # --- Annotation store ---
    # 'memory' keeps reviews for the lifetime of the process, 'sql' persists them
    STORE_BACKEND = os.environ.get('SHIA_STORE_BACKEND', 'memory')
    DATABASE_URL = os.environ.get('DATABASE_URL', 'sqlite:///' + os.path.join(os.path.dirname(basedir), 'shia.db'))
    SQL_ECHO = os.environ.get('SQL_ECHO', '0') == '1'

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


config = Config()
