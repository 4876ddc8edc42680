import io
import json
import logging

import pytest

from gush.logs import GushJsonFormatter, WorkflowContextFilter, setup_logging


@pytest.fixture
def gush_logger():
    logger = logging.getLogger("gush")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def capture(logger, formatter):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.addFilter(WorkflowContextFilter())
    logger.handlers[0] = handler
    return stream


def test_json_lines_carry_workflow_context(gush_logger):
    setup_logging(json_output=True)
    stream = capture(gush_logger, GushJsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    logging.getLogger("gush.client").info("Enqueued", extra={"workflow_id": "wf", "job": "FetchA-1"})

    line = json.loads(stream.getvalue())
    assert line["message"] == "Enqueued"
    assert line["level"] == "INFO"
    assert line["logger"] == "gush.client"
    assert line["workflow_id"] == "wf"
    assert line["job"] == "FetchA-1"


def test_empty_context_is_omitted(gush_logger):
    setup_logging(json_output=True)
    stream = capture(gush_logger, GushJsonFormatter("%(message)s"))

    logging.getLogger("gush.worker").warning("plain")

    line = json.loads(stream.getvalue())
    assert "workflow_id" not in line and "job" not in line


def test_setup_replaces_handlers_and_sets_level(gush_logger):
    setup_logging()
    setup_logging(debug=True)
    assert len(gush_logger.handlers) == 1
    assert gush_logger.level == logging.DEBUG
    assert not gush_logger.propagate
