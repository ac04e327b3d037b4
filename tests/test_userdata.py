"""Tests for user-data template rendering."""

import pytest

from nova_autoscaler.exceptions import UserDataError
from nova_autoscaler.types import InstanceSlot
from nova_autoscaler.userdata import render_user_data


@pytest.fixture
def slot():
    return InstanceSlot(
        name="workers-0f8e4b1c-3a2d",
        random_uuid="0f8e4b1c-3a2d-4c5e-9f10-1234567890ab",
        availability_zone="az2",
    )


def test_renders_all_variables(tmp_path, slot):
    template = tmp_path / "cloud-init.tpl"
    template.write_text(
        "#cloud-config\n"
        "hostname: {{ .Name }}\n"
        "az: {{.AZ}}\n"
        "uuid: {{ .RandomUUID }}\n"
        "short: {{ .ShortRandomUUID }}\n"
        "pool: {{ .PoolName }}\n"
    )

    rendered = render_user_data(str(template), slot, "workers").decode()

    assert "hostname: workers-0f8e4b1c-3a2d\n" in rendered
    assert "az: az2\n" in rendered
    assert "uuid: 0f8e4b1c-3a2d-4c5e-9f10-1234567890ab\n" in rendered
    assert "short: 0f8e4b1c-3a2d\n" in rendered
    assert "pool: workers\n" in rendered


def test_other_braces_and_dollars_are_untouched(tmp_path, slot):
    template = tmp_path / "script.sh"
    template.write_text('echo "$HOME ${PATH}" {{ not_a_var }} {{ .Name }}')

    rendered = render_user_data(str(template), slot, "workers").decode()

    assert rendered == 'echo "$HOME ${PATH}" {{ not_a_var }} workers-0f8e4b1c-3a2d'


def test_unknown_variable_fails(tmp_path, slot):
    template = tmp_path / "bad.tpl"
    template.write_text("{{ .Flavor }}")

    with pytest.raises(UserDataError) as exc_info:
        render_user_data(str(template), slot, "workers")

    assert "Flavor" in str(exc_info.value)


def test_unreadable_template_fails(tmp_path, slot):
    with pytest.raises(UserDataError) as exc_info:
        render_user_data(str(tmp_path / "missing.tpl"), slot, "workers")

    assert exc_info.value.path.endswith("missing.tpl")


@pytest.mark.parametrize(
    "source,action",
    [
        ("{{ if .AZ }}zone: {{ .AZ }}{{ end }}", "{{ if"),
        ("{{range .Tags}}x{{end}}", "{{range"),
        ("name: {{- .Name }}", "{{-"),
    ],
)
def test_control_actions_are_rejected(tmp_path, slot, source, action):
    template = tmp_path / "cloud-init.tpl"
    template.write_text(source)

    with pytest.raises(UserDataError) as exc_info:
        render_user_data(str(template), slot, "workers")

    assert "unsupported template action" in str(exc_info.value)
    assert action in exc_info.value.reason
