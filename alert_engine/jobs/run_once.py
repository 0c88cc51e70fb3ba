"""One alert engine pass for external schedulers (cron, k8s CronJob).

Prints the run summary as JSON. Exits non-zero only when the run as a whole
failed; per-tenant errors are reported inside the summary.
"""

import json
import logging
import sys

from alert_engine.core.config import get_settings
from alert_engine.core.logging import configure_logging
from alert_engine.db.session import SessionLocal
from alert_engine.services.alert_engine import AlertEngineRunError, AlertEngineService


def main() -> int:
    configure_logging()
    service = AlertEngineService(settings=get_settings(), session_factory=SessionLocal)
    try:
        summary = service.run_once(trigger_source="cli")
    except AlertEngineRunError as exc:
        logging.getLogger("alert_engine.jobs").error("alert engine run aborted: %s", exc)
        print(json.dumps({"status": "failed", "error": str(exc)}))
        return 1

    print(json.dumps(summary.to_dict(), sort_keys=True))
    return 0


if __name__ == "__main__":
    sys.exit(main())
