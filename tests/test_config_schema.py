"""
Brief: Tests for srvctl.config.config_schema normalization and validation.

Inputs:
  - None

Outputs:
  - None
"""

import logging
from typing import Any, Dict

import pytest

from srvctl.config import config_schema as schema_mod
from srvctl.config.config_schema import get_default_schema_path, validate_config


def _base() -> Dict[str, Any]:
    return {
        "domains": [
            {"hostname": "_mongodb._tcp.db.example.net", "service_name": "mongo"}
        ]
    }


def test_packaged_schema_is_present():
    """
    Brief: The JSON Schema ships next to the module.

    Inputs:
      - None

    Outputs:
      - None: Asserts schema file exists
    """
    assert get_default_schema_path().is_file()


def test_variables_expand_whole_values_and_inline_text():
    """
    Brief: $KEY injects typed values, ${KEY} substitutes inside strings.

    Inputs:
      - None

    Outputs:
      - None: Asserts expanded values and removal of vars
    """
    cfg = {
        "vars": {"ZONE": "db.example.net", "INTERVAL": 15, "EXTRA": [{"hostname": "_x._udp.example", "service_name": "x"}]},
        "domains": [
            {"hostname": "_mongodb._tcp.${ZONE}", "service_name": "mongo"},
            "$EXTRA",
        ],
        "poll_interval_seconds": "$INTERVAL",
    }
    validate_config(cfg)
    assert "vars" not in cfg
    assert cfg["poll_interval_seconds"] == 15
    assert cfg["domains"][0]["hostname"] == "_mongodb._tcp.db.example.net"
    assert cfg["domains"][1] == {"hostname": "_x._udp.example", "service_name": "x"}


def test_variables_reject_cycles_and_bad_keys():
    """
    Brief: Variable cycles and lowercase keys raise ValueError.

    Inputs:
      - None

    Outputs:
      - None: Asserts ValueError for each case
    """
    with pytest.raises(ValueError):
        schema_mod._normalize_variables_for_validation(
            {"vars": {"A": "${B}", "B": "${A}"}}
        )
    with pytest.raises(ValueError):
        schema_mod._normalize_variables_for_validation({"vars": {"lower": 1}})
    with pytest.raises(ValueError):
        schema_mod._normalize_variables_for_validation({"vars": ["A"]})


def test_unknown_variable_reference_is_left_verbatim():
    """
    Brief: ${UNKNOWN} inside a string is not substituted.

    Inputs:
      - None

    Outputs:
      - None: Asserts text unchanged
    """
    cfg = {"vars": {"A": 1}, "namespace": "ns-${UNKNOWN}"}
    schema_mod._normalize_variables_for_validation(cfg)
    assert cfg["namespace"] == "ns-${UNKNOWN}"


def test_camel_case_domain_keys_are_normalized():
    """
    Brief: serviceName/sliceType are rewritten to snake_case before validation.

    Inputs:
      - None

    Outputs:
      - None: Asserts rewritten keys and lowercase slice type
    """
    cfg = {
        "domains": [
            {"hostname": "_a._tcp.example", "serviceName": "a", "sliceType": "IPV4"}
        ]
    }
    validate_config(cfg)
    assert cfg["domains"][0] == {
        "hostname": "_a._tcp.example",
        "service_name": "a",
        "slice_type": "ipv4",
    }


@pytest.mark.parametrize(
    "patch",
    [
        {"endpoint_mode": "pods"},
        {"stale_policy": "delete"},
        {"poll_interval_seconds": 0},
        {"domains": [{"hostname": "_a._tcp.example", "service_name": "Bad_Name"}]},
        {"domains": [{"service_name": "a"}]},
        {"resolver": {"port": 70000}},
        {"namespace": "../escaped"},
    ],
)
def test_invalid_values_are_fatal(patch):
    """
    Brief: Schema violations other than unknown keys always raise.

    Inputs:
      - patch: top-level override applied to a valid config

    Outputs:
      - None: Asserts ValueError mentioning the config path
    """
    cfg = _base()
    cfg.update(patch)
    with pytest.raises(ValueError) as excinfo:
        validate_config(cfg, config_path="cfg.yaml", unknown_keys="ignore")
    assert "cfg.yaml" in str(excinfo.value)


def test_unknown_keys_policy(caplog):
    """
    Brief: Extra keys are ignored, warned about or fatal depending on policy.

    Inputs:
      - caplog: pytest fixture

    Outputs:
      - None: Asserts behaviour for each policy
    """
    caplog.set_level(logging.WARNING)

    validate_config({**_base(), "surprise": 1}, unknown_keys="ignore")
    assert "surprise" not in caplog.text

    validate_config({**_base(), "surprise": 1}, unknown_keys="warn")
    assert "surprise" in caplog.text

    with pytest.raises(ValueError):
        validate_config({**_base(), "surprise": 1}, unknown_keys="error")

    with pytest.raises(ValueError):
        validate_config(_base(), unknown_keys="sometimes")
