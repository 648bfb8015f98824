"""Settings library for the budget configuration.

Provides:
    - Schema validation and enforcement for the budget.json structure.
    - Loading, saving, reverting, and managing application settings.
    - Application paths for the config, session, and local mirror files.
"""

import json
import logging
import pathlib
import re
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'BudgetTracker'


def is_valid_hex_color(value: str) -> bool:
    """Check if a string is a valid hexadecimal color in #RRGGBB format.

    Args:
        value (str): Color string to validate.

    Returns:
        bool: True if value matches '#RRGGBB', False otherwise.
    """
    return bool(re.fullmatch(r'#[0-9A-Fa-f]{6}', value))


def is_valid_url(value: str) -> bool:
    """Check if a string looks like an http(s) base url."""
    return bool(re.fullmatch(r'https?://[^\s/$.?#][^\s]*', value))


METADATA_KEYS: List[str] = [
    'name',
    'currency',
    'locale',
    'warn_negative_balance',
]

CONFIG_SCHEMA: Dict[str, Any] = {
    'remote': {
        'type': dict,
        'required': True,
        'item_schema': {
            'url': {'type': str, 'required': True, 'format': 'url'},
            'key': {'type': str, 'required': True},
            'timeout': {'type': int, 'required': True, 'min': 1},
        }
    },
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'probe_interval': {'type': int, 'required': True, 'min': 1},
            'subscription_interval': {'type': int, 'required': True, 'min': 1},
        }
    },
    'metadata': {
        'type': dict,
        'required': True,
        'required_keys': METADATA_KEYS,
        'item_schema': {
            'name': {'type': str, 'required': True},
            'currency': {'type': str, 'required': True},
            'locale': {'type': str, 'required': True},
            'warn_negative_balance': {'type': bool, 'required': True},
        }
    },
}


def _validate_items(section: str, data: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate the fields of a configuration section against its item schema.

    Args:
        section: Name of the section, used in error messages.
        data: Section data to validate.
        item_schema: Dict describing required fields, types, and constraints.

    Raises:
        TypeError: If data is not a dict or a field has the wrong type.
        ValueError: If a required field is missing or fails a format or range constraint.
    """
    logging.debug(f'Validating "{section}" section.')
    if not isinstance(data, dict):
        msg: str = f'"{section}" must be a dict.'
        logging.error(msg)
        raise TypeError(msg)

    for field, field_specs in item_schema.items():
        if field_specs['required'] and field not in data:
            msg = f'Section "{section}" missing "{field}".'
            logging.error(msg)
            raise ValueError(msg)
        if field not in data:
            continue

        value = data[field]
        # bool is a subclass of int, never accept it for numeric fields
        if not isinstance(value, field_specs['type']) or (
                field_specs['type'] is int and isinstance(value, bool)):
            msg = (
                f'Section "{section}" field "{field}" must be {field_specs["type"]}, '
                f'got {type(value)}.'
            )
            logging.error(msg)
            raise TypeError(msg)

        if field_specs.get('format') == 'url' and value and not is_valid_url(value):
            msg = f'Section "{section}" field "{field}" must be an http(s) url, got "{value}".'
            logging.error(msg)
            raise ValueError(msg)

        if 'min' in field_specs and value < field_specs['min']:
            msg = f'Section "{section}" field "{field}" must be >= {field_specs["min"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure default templates and directories exist.

    This class initializes paths for the configuration template, the user config,
    the saved session and the local mirror database. It verifies the presence of
    the template and prepares the default configuration by copying it into the
    user data directory.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.config_template: pathlib.Path = self.template_dir / 'budget.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.auth_dir: pathlib.Path = self.config_dir / 'auth'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.config_path: pathlib.Path = self.config_dir / 'budget.json'
        self.creds_path: pathlib.Path = self.auth_dir / 'session.json'
        self.db_path: pathlib.Path = self.db_dir / 'mirror.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and prepare configuration directories and files.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.config_template.exists():
            msg = f'Missing config template: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        for directory in (self.config_dir, self.auth_dir, self.db_dir):
            if not directory.exists():
                logging.debug(f'Creating directory: {directory}')
                directory.mkdir(parents=True, exist_ok=True)

        if not self.config_path.exists():
            logging.debug(f'Copying default config from template to {self.config_path}')
            shutil.copy(self.config_template, self.config_path)

    def revert_config_to_template(self) -> None:
        """Restore budget.json from the default template file.

        Raises:
            FileNotFoundError: If the template file is missing.
        """
        logging.debug(f'Reverting config to template: {self.config_template}')
        if not self.config_template.exists():
            msg: str = f'Config template not found: {self.config_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.config_template, self.config_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save budget.json sections.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the config data.

        Args:
            config_path: Optional path to a custom budget.json file.
        """
        super().__init__()
        self.config_path: pathlib.Path = pathlib.Path(config_path) if config_path else self.config_path

        self._signals_blocked: bool = False
        self.config_data: Dict[str, Any] = {k: {} for k in CONFIG_SCHEMA}

        self.init_data()

    def __getitem__(self, key: str) -> Any:
        """Retrieve a metadata value using dictionary-style access.

        Raises:
            KeyError: If key is not in METADATA_KEYS.
        """
        if key not in METADATA_KEYS:
            raise KeyError(f'Invalid metadata key: {key}, must be one of {METADATA_KEYS}')
        if 'metadata' not in self.config_data:
            raise RuntimeError('Malformed config data, missing "metadata" section.')

        _type = CONFIG_SCHEMA['metadata']['item_schema'][key]['type']
        v = self.config_data['metadata'].get(key)
        if not isinstance(v, _type):
            logging.error(f'Metadata key "{key}" is not of type {_type}, got {type(v)}.')
            return None
        return v

    def __setitem__(self, key: str, value: Any) -> None:
        """Assign a metadata value using dictionary-style access and persist it.

        Raises:
            KeyError: If key is not in METADATA_KEYS.
        """
        if key not in METADATA_KEYS:
            raise KeyError(f'Invalid metadata key: {key}, must be one of {METADATA_KEYS}')
        if 'metadata' not in self.config_data:
            raise RuntimeError('Malformed config data, missing "metadata" section.')

        _type = CONFIG_SCHEMA['metadata']['item_schema'][key]['type']
        if not isinstance(value, _type):
            logging.warning(f'Metadata key "{key}" is not of type {_type}, got {type(value)}.')
            value = _type(value)

        self.config_data['metadata'][key] = value
        self.save_section('metadata')

        if self._signals_blocked:
            return
        from ..core.signals import signals
        signals.metadataChanged.emit(key, value)

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of configuration change signals."""
        self._signals_blocked = v

    def init_data(self) -> None:
        """Reload config data, emitting update signals."""
        self.load_config()

        if self._signals_blocked:
            return
        from ..core.signals import signals
        for section in CONFIG_SCHEMA:
            signals.configSectionChanged.emit(section)
        for k, v in self.config_data.get('metadata', {}).items():
            signals.metadataChanged.emit(k, v)

    def load_config(self) -> Dict[str, Any]:
        """Load budget.json from disk and validate against schema.

        Returns:
            The loaded config data dictionary.

        Raises:
            status.ConfigNotFoundException: If budget.json is missing.
            status.ConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading config from "{self.config_path}"')
        if not self.config_path.exists():
            raise status.ConfigNotFoundException(str(self.config_path))

        try:
            with self.config_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_config_data(data)
        except status.ConfigInvalidException:
            raise
        except (ValueError, TypeError) as ex:
            raise status.ConfigInvalidException(str(ex)) from ex

        self.config_data = data
        return self.config_data

    def validate_config_data(self, data: Dict[str, Any] = None) -> None:
        """Validate config data against the defined CONFIG_SCHEMA.

        Args:
            data (dict, optional): Config data to validate. Defaults to self.config_data.

        Raises:
            status.ConfigInvalidException: If a required section is missing or has the wrong type.
            ValueError, TypeError: If a section's fields fail validation.
        """
        if data is None:
            data = self.config_data

        if not data:
            raise status.ConfigInvalidException('Config data is empty.')

        logging.debug('Validating config data against schema.')
        for field, specs in CONFIG_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise status.ConfigInvalidException(f'Missing required field: {field}')
            if not isinstance(data[field], specs['type']):
                raise status.ConfigInvalidException(
                    f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.'
                )

            missing = [k for k in specs.get('required_keys', []) if k not in data[field]]
            if missing:
                raise ValueError(f'Section "{field}" is missing keys: {missing}')

            _validate_items(field, data[field], specs['item_schema'])

        logging.debug('Config data is valid.')

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a configuration section.

        Raises:
            KeyError: If section_name is not in config_data.
        """
        return self.config_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace, validate and persist a configuration section.

        The previous section data is restored if validation fails.

        Raises:
            ValueError: If section_name is unrecognized or the data fails validation.
            TypeError: If the data has the wrong type.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        current_section_data: Dict[str, Any] = self.config_data[section_name].copy()
        self.config_data[section_name] = new_data
        try:
            self.validate_config_data()
            self.save_section(section_name)
        except (ValueError, TypeError, status.ConfigInvalidException) as e:
            logging.error(f'Validation error on set_section("{section_name}"): {e}')
            self.config_data[section_name] = current_section_data
            raise

        if self._signals_blocked:
            return
        from ..core.signals import signals
        signals.configSectionChanged.emit(section_name)

    def reload_section(self, section_name: str) -> None:
        """Reload a configuration section from disk and emit change signal.

        Raises:
            ValueError: If section_name is unrecognized.
            status.ConfigInvalidException: If the file on disk fails validation.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for reload: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        logging.debug(f'Reloading section "{section_name}" from disk.')
        with self.config_path.open('r', encoding='utf-8') as f:
            data: Dict[str, Any] = json.load(f)
        self.validate_config_data(data=data)
        self.config_data[section_name] = data[section_name]

        from ..core.signals import signals
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Raises:
            ValueError: If section_name is invalid or not present in the template.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.config_data[section_name] = template_data[section_name]
        self.save_section(section_name)

        from ..core.signals import signals
        signals.configSectionChanged.emit(section_name)

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to budget.json.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.config_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.config_data[section_name]

        with self.config_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
