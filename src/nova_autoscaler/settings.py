"""Environment-based connection settings for OpenStack and Nomad.

Credentials come from the standard OpenStack client environment variables
(OS_ prefix) and the Nomad CLI variables (NOMAD_ prefix). Keys present in
the plugin configuration override the environment.
"""

from collections.abc import Mapping

from pydantic_settings import BaseSettings

from nova_autoscaler import config as keys


class OpenStackSettings(BaseSettings):
    """OpenStack authentication settings.

    All settings can be overridden via environment variables with the OS_
    prefix. For example:
        OS_AUTH_URL=https://keystone.example.com:5000/v3
        OS_PROJECT_NAME=autoscaling
    """

    auth_url: str = ""
    username: str = ""
    password: str = ""
    domain_name: str = "Default"
    user_domain_name: str = ""
    project_domain_name: str = ""
    project_id: str = ""
    project_name: str = ""
    region_name: str = "RegionOne"

    # TLS
    cacert: str = ""
    insecure: bool = False

    model_config = {"env_prefix": "OS_"}

    def with_overrides(self, config: Mapping[str, str]) -> "OpenStackSettings":
        """Return a copy with values from the plugin config applied."""
        update: dict[str, object] = {}
        mapping = {
            keys.KEY_AUTH_URL: "auth_url",
            keys.KEY_USERNAME: "username",
            keys.KEY_PASSWORD: "password",
            keys.KEY_DOMAIN_NAME: "domain_name",
            keys.KEY_PROJECT_ID: "project_id",
            keys.KEY_PROJECT_NAME: "project_name",
            keys.KEY_REGION_NAME: "region_name",
            keys.KEY_CACERT_FILE: "cacert",
        }
        for config_key, field_name in mapping.items():
            if config_key in config:
                update[field_name] = config[config_key]
        if keys.is_set(config, keys.KEY_INSECURE):
            update["insecure"] = True
        return self.model_copy(update=update)

    @property
    def user_domain(self) -> str:
        return self.user_domain_name or self.domain_name

    @property
    def project_domain(self) -> str:
        return self.project_domain_name or self.domain_name


class NomadSettings(BaseSettings):
    """Nomad API connection settings.

    Read from NOMAD_ADDR, NOMAD_TOKEN and NOMAD_NAMESPACE, overridable with
    nomad_address, nomad_token and nomad_namespace plugin config keys.
    """

    addr: str = "http://127.0.0.1:4646"
    token: str = ""
    namespace: str = ""

    model_config = {"env_prefix": "NOMAD_"}

    def with_overrides(self, config: Mapping[str, str]) -> "NomadSettings":
        """Return a copy with values from the plugin config applied."""
        update: dict[str, object] = {}
        if config.get("nomad_address"):
            update["addr"] = config["nomad_address"]
        if config.get("nomad_token"):
            update["token"] = config["nomad_token"]
        if config.get("nomad_namespace"):
            update["namespace"] = config["nomad_namespace"]
        return self.model_copy(update=update)
