import json
import logging

from tileturn.config import Settings
from tileturn.observability import JSONFormatter, setup_logging


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv('TILETURN_STORE', 'sqlite')
    monkeypatch.setenv('TILETURN_STALE_GAME_DAYS', '3')
    monkeypatch.setenv('TILETURN_DEFAULT_DICTIONARY', 'Demo')

    settings = Settings()

    assert settings.store == 'sqlite'
    assert settings.stale_game_days == 3
    assert settings.default_dictionary == 'Demo'
    assert settings.log_format == 'text'


def test_json_formatter_carries_game_fields():
    record = logging.LogRecord('tileturn.game', logging.INFO, __file__, 1,
                               'Game %s over', ('g1',), None)
    record.game_key = 'g1'
    record.turn_type = 'Game over'

    line = json.loads(JSONFormatter().format(record))

    assert line['message'] == 'Game g1 over'
    assert line['level'] == 'INFO'
    assert line['game_key'] == 'g1'
    assert line['turn_type'] == 'Game over'
    assert 'player_key' not in line


def test_setup_logging_installs_one_handler():
    root = logging.getLogger()
    setup_logging('DEBUG', 'json')
    setup_logging('WARNING', 'json')

    ours = [h for h in root.handlers if getattr(h, '_tileturn', False)]
    assert len(ours) == 1
    assert isinstance(ours[0].formatter, JSONFormatter)
    assert root.level == logging.WARNING
