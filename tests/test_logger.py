import logger as logger_module


def read_log(log):
    for handler in log.logger.handlers:
        handler.flush()
    return log.log_file.read_text()


def test_context_is_logged_and_secrets_redacted(quiet_logger):
    quiet_logger.info("Looking up team", {'team': 'ENG', 'api_key': 'lin_api_secret'})

    text = read_log(quiet_logger)
    assert '"team":"ENG"' in text
    assert 'lin_api_secret' not in text
    assert '<REDACTED>' in text


def test_debug_is_dropped_unless_enabled(quiet_logger, tmp_path):
    quiet_logger.debug("hidden detail")
    assert 'hidden detail' not in read_log(quiet_logger)

    verbose = logger_module.configure_logger(log_dir=tmp_path / 'debug-logs', debug=True, console_output=False)
    verbose.debug("visible detail")
    assert 'visible detail' in read_log(verbose)


def test_log_operation_records_result(quiet_logger):
    quiet_logger.log_operation('import_run', 'success', duration=0.5, context={'created': 2})

    text = read_log(quiet_logger)
    assert 'Operation: import_run | Result: success' in text
    assert '"created":2' in text


def test_get_logger_returns_singleton(quiet_logger):
    assert logger_module.get_logger() is quiet_logger


def test_http_request_drops_query_string(tmp_path):
    log = logger_module.configure_logger(log_dir=tmp_path / 'http-logs', debug=True, console_output=False)

    log.log_http_request('POST', 'https://api.linear.app/graphql?token=secret123', 200, 0.25)

    text = read_log(log)
    assert 'HTTP POST https://api.linear.app/graphql' in text
    assert 'secret123' not in text
