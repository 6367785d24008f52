from __future__ import annotations

import threading

import pytest

from zfcrypt.context import BACKGROUND
from zfcrypt.encryption import (
    EncryptionCLIProber,
    EncryptionCLISupport,
    EncryptionInspector,
    EncryptionStatus,
    KeyStatus,
    LoadKeyUsageDetector,
    ZfsDataIntegrityError,
    ZfsEncryptionQueryError,
    ZfsFatalError,
    ZfsInvariantViolation,
    ZfsKeyNotLoadedError,
    ZfsUnknownKeyStatus,
    interpret_encryption,
)
from zfcrypt.zfs_command import (
    ZfsCommandError,
    ZfsDatasetNotFound,
    ZfsError,
    ZfsExecutionError,
    ZfsValidationError,
)
from zfcrypt.zfs_properties import PropertySource


class StaticProber(EncryptionCLIProber):
    """Prober whose result is fixed up front."""

    def __init__(self, supported=True, error=None):
        super().__init__()
        self._state = EncryptionCLISupport(supported=supported, error=error)


def _inspector(query, supported=True, error=None):
    return EncryptionInspector(StaticProber(supported, error), query=query)


# --- encryption_enabled ---

def test_encryption_off_is_disabled(fake_query):
    query = fake_query({"encryption": "off"})
    inspector = _inspector(query)

    assert inspector.encryption_enabled(BACKGROUND, "tank/data") is False
    assert inspector.encryption_status(BACKGROUND, "tank/data") is EncryptionStatus.DISABLED
    assert query.calls[0] == ("tank/data", ["encryption"], PropertySource.ANY)


@pytest.mark.parametrize("cipher", ["aes-256-gcm", "aes-128-ccm", "aes-192-gcm", "on"])
def test_any_cipher_name_is_enabled(fake_query, cipher):
    inspector = _inspector(fake_query({"encryption": cipher}))

    assert inspector.encryption_enabled(BACKGROUND, "tank/secure") is True


def test_dash_is_a_wrapped_data_integrity_error(fake_query):
    inspector = _inspector(fake_query({"encryption": "-"}))

    with pytest.raises(ZfsEncryptionQueryError) as excinfo:
        inspector.encryption_enabled(BACKGROUND, "tank/data")
    assert isinstance(excinfo.value.__cause__, ZfsDataIntegrityError)
    assert excinfo.value.dataset == "tank/data"
    assert str(excinfo.value).startswith("zfs get encryption enabled fs='tank/data': ")
    assert "should never be" in str(excinfo.value)


def test_interpreting_dash_directly_names_no_operation():
    with pytest.raises(ZfsDataIntegrityError) as excinfo:
        interpret_encryption("-", "tank/data")
    assert str(excinfo.value) == "`encryption` property should never be \"-\""


def test_empty_encryption_value_is_fatal_even_with_forced_support(monkeypatch, fake_zfs, fake_query):
    monkeypatch.setenv("ZFCRYPT_EXPERIMENTAL_ZFS_ENCRYPTION_CLI_SUPPORTED", "true")
    runner = fake_zfs({"load-key": ZfsCommandError("failed", ["zfs", "load-key"], "", 2)})
    prober = EncryptionCLIProber(LoadKeyUsageDetector(runner))
    inspector = EncryptionInspector(prober, query=fake_query({"encryption": ""}))

    with pytest.raises(ZfsInvariantViolation):
        inspector.encryption_enabled(BACKGROUND, "tank/data")


def test_missing_property_in_output_is_fatal(fake_query):
    inspector = _inspector(fake_query({}))

    with pytest.raises(ZfsInvariantViolation):
        inspector.encryption_enabled(BACKGROUND, "tank/data")


def test_fatal_errors_are_not_zfs_errors():
    assert not issubclass(ZfsFatalError, ZfsError)
    assert issubclass(ZfsInvariantViolation, ZfsFatalError)
    assert issubclass(ZfsUnknownKeyStatus, ZfsFatalError)


def test_query_failure_is_wrapped(fake_query):
    cause = ZfsDatasetNotFound("dataset 'tank/gone' does not exist", None, "does not exist", 1)
    inspector = _inspector(fake_query(error=cause))

    with pytest.raises(ZfsEncryptionQueryError) as excinfo:
        inspector.encryption_enabled(BACKGROUND, "tank/gone")
    err = excinfo.value
    assert err.__cause__ is cause
    assert err.dataset == "tank/gone"
    assert err.operation == "zfs get encryption enabled"
    assert "cannot get `encryption` property" in str(err)


@pytest.mark.parametrize("name", ["", "tank@snap", "tank#book", "tank//data", "/tank", "tank/", "1tank", "tank/da$ta"])
def test_invalid_name_fails_before_query(fake_query, name):
    query = fake_query({"encryption": "off"})
    inspector = _inspector(query)

    with pytest.raises(ZfsEncryptionQueryError) as excinfo:
        inspector.encryption_enabled(BACKGROUND, name)
    assert isinstance(excinfo.value.__cause__, ZfsValidationError)
    assert query.calls == []


# --- key_is_unloaded ---

def test_key_available_is_loaded(fake_query):
    query = fake_query({"keystatus": "available"})
    inspector = _inspector(query)

    assert inspector.key_is_unloaded(BACKGROUND, "tank/secure") is False
    assert inspector.key_status(BACKGROUND, "tank/secure") is KeyStatus.LOADED
    assert query.calls[0][1] == ["keystatus"]


def test_key_unavailable_is_unloaded(fake_query):
    inspector = _inspector(fake_query({"keystatus": "unavailable"}))

    assert inspector.key_is_unloaded(BACKGROUND, "tank/secure") is True


@pytest.mark.parametrize("value", ["-", "locked", "AVAILABLE"])
def test_unknown_key_status_is_fatal(fake_query, value):
    inspector = _inspector(fake_query({"keystatus": value}))

    with pytest.raises(ZfsUnknownKeyStatus) as excinfo:
        inspector.key_is_unloaded(BACKGROUND, "tank/secure")
    assert excinfo.value.value == value


def test_empty_key_status_is_invariant_violation(fake_query):
    inspector = _inspector(fake_query({"keystatus": ""}))

    with pytest.raises(ZfsInvariantViolation):
        inspector.key_is_unloaded(BACKGROUND, "tank/secure")


def test_keystatus_query_failure_is_wrapped(fake_query):
    cause = ZfsCommandError("zfs get failed.", ["zfs", "get"], "boom", 1)
    inspector = _inspector(fake_query(error=cause))

    with pytest.raises(ZfsEncryptionQueryError) as excinfo:
        inspector.key_is_unloaded(BACKGROUND, "tank/secure")
    assert "cannot get `keystatus` property" in str(excinfo.value)
    assert excinfo.value.operation == "zfs get key loaded"


# --- capability short-circuit ---

def test_unsupported_short_circuits_both_gates(fake_query):
    query = fake_query(error=AssertionError("query must not run"))
    inspector = _inspector(query, supported=False)

    assert inspector.encryption_enabled(BACKGROUND, "tank/data") is False
    assert inspector.encryption_status(BACKGROUND, "tank/data") is EncryptionStatus.UNSUPPORTED
    assert inspector.key_is_unloaded(BACKGROUND, "tank/data") is False
    assert inspector.key_status(BACKGROUND, "tank/data") is KeyStatus.CAPABILITY_ABSENT
    assert query.calls == []


def test_probe_execution_error_surfaces_from_both_gates(fake_zfs, fake_query):
    runner = fake_zfs({"load-key": ZfsExecutionError("Command not found: 'zfs'.")})
    prober = EncryptionCLIProber(LoadKeyUsageDetector(runner))
    query = fake_query({"encryption": "aes-256-gcm", "keystatus": "available"})
    inspector = EncryptionInspector(prober, query=query)

    with pytest.raises(ZfsEncryptionQueryError) as enc_err:
        inspector.encryption_enabled(BACKGROUND, "tank/data")
    with pytest.raises(ZfsEncryptionQueryError) as key_err:
        inspector.key_is_unloaded(BACKGROUND, "tank/data")

    assert isinstance(enc_err.value.__cause__, ZfsExecutionError)
    assert isinstance(key_err.value.__cause__, ZfsExecutionError)
    assert prober.probe_supported().supported is False
    assert query.calls == []
    assert len(runner.calls) == 1


def test_concurrent_gates_share_one_probe(fake_zfs, fake_query):
    usage = "usage:\n\tload-key [-rn] [-L <keylocation>] <-a | filesystem|volume>\n"
    runner = fake_zfs({"load-key": ZfsCommandError("failed", ["zfs", "load-key"], usage, 2)})
    inspector = EncryptionInspector(EncryptionCLIProber(LoadKeyUsageDetector(runner)),
                                    query=fake_query({"encryption": "off", "keystatus": "available"}))
    errors = []

    def worker(i):
        try:
            if i % 2:
                assert inspector.encryption_enabled(BACKGROUND, f"tank/ds{i}") is False
            else:
                assert inspector.key_is_unloaded(BACKGROUND, f"tank/ds{i}") is False
        except Exception as e:  # collected and asserted below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert errors == []
    assert len(runner.calls) == 1


# --- send guard ---

def test_raw_send_skips_all_checks(fake_query):
    query = fake_query(error=AssertionError("query must not run"))
    inspector = _inspector(query)

    inspector.check_send_allowed(BACKGROUND, "tank/secure", raw=True)
    assert query.calls == []


def test_live_send_of_unloaded_key_is_refused(fake_query):
    inspector = _inspector(fake_query({"encryption": "aes-256-gcm", "keystatus": "unavailable"}))

    with pytest.raises(ZfsKeyNotLoadedError) as excinfo:
        inspector.check_send_allowed(BACKGROUND, "tank/secure")
    assert excinfo.value.dataset == "tank/secure"


def test_live_send_of_loaded_key_is_allowed(fake_query):
    inspector = _inspector(fake_query({"encryption": "aes-256-gcm", "keystatus": "available"}))

    inspector.check_send_allowed(BACKGROUND, "tank/secure")


def test_live_send_of_unencrypted_dataset_skips_keystatus(fake_query):
    query = fake_query({"encryption": "off", "keystatus": "-"})
    inspector = _inspector(query)

    inspector.check_send_allowed(BACKGROUND, "tank/plain")
    assert [c[1] for c in query.calls] == [["encryption"]]


# --- module-level defaults ---

def test_module_functions_use_default_inspector(monkeypatch, fake_query):
    from zfcrypt import encryption

    inspector = _inspector(fake_query({"encryption": "aes-256-gcm", "keystatus": "unavailable"}))
    monkeypatch.setattr(encryption, "_default_prober", inspector.prober)
    monkeypatch.setattr(encryption, "_default_inspector", inspector)

    assert encryption.encryption_cli_supported() is True
    assert encryption.encryption_enabled(BACKGROUND, "tank/secure") is True
    assert encryption.key_is_unloaded(BACKGROUND, "tank/secure") is True
    with pytest.raises(ZfsKeyNotLoadedError):
        encryption.check_send_allowed(BACKGROUND, "tank/secure")
