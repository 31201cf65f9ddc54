from asr_bridge.errors import ERROR_SPECS, ASRError, ErrorCode, format_error


def test_every_code_has_an_error_spec():
    assert set(ERROR_SPECS) == set(ErrorCode)


def test_format_error_uses_default_message():
    assert format_error(ErrorCode.RESPONSE_EMPTY) == "ERR3005 service response is empty"
    assert format_error(ErrorCode.SERVICE_ERROR, "quota") == "ERR3002 quota"


def test_asr_error_carries_fatality():
    err = ASRError(ErrorCode.API_URL_MISSING)
    assert err.code is ErrorCode.API_URL_MISSING
    assert err.fatal is True
    assert str(err) == "ERR1001 Missing required parameter: api_url"


def test_only_configuration_errors_are_fatal():
    fatal = {code for code, spec in ERROR_SPECS.items() if spec.fatal}
    assert fatal == {
        ErrorCode.API_URL_MISSING,
        ErrorCode.API_KEY_MISSING,
        ErrorCode.CONFIG_VALUE_INVALID,
    }
    assert ASRError(ErrorCode.UNSUPPORTED_CODEC).fatal is False
