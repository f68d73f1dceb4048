import os
import yaml
import keyring

from settings_schema import SettingsSchema, validate_settings

APP_VERSION = "1.0.0"
ENV_PREFIX = "LIFTVAULT_"


class YamlConfig:
    """Load and save settings to a YAML file with optional encryption."""

    SENSITIVE_KEYS = {
        "s3_access_key_id",
        "s3_secret_access_key",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "liftvault"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not self.encrypt:
            return data
        for key in self.SENSITIVE_KEYS & set(data):
            secret = keyring.get_password(self.service, key)
            if secret is None:
                # marker left in the file but the keyring entry is gone
                del data[key]
            else:
                data[key] = secret
        return data

    def save(self, data: dict) -> None:
        validate_settings(data)
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if out.get(key) is not None:
                    keyring.set_password(self.service, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)

    @staticmethod
    def env_overrides() -> dict:
        """Settings given as ``LIFTVAULT_<KEY>`` environment variables."""
        out = {}
        for key in SettingsSchema.model_fields:
            value = os.environ.get(ENV_PREFIX + key.upper())
            if value is not None:
                out[key] = value
        return out

    def settings(self) -> dict:
        """File settings with environment overrides, validated over the defaults."""
        return validate_settings({**self.load(), **self.env_overrides()})
