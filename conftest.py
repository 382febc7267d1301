import logging

import knowledge.common as k_common

logger = logging.getLogger(__name__)

def pytest_sessionstart(session):
    # KNOWLEDGE_LOG_LEVEL / KNOWLEDGE_LOG_STRUCT configure logging for the test run
    k_common.setlogging(logger)
