"""Certificate auto-renewal scheduler."""

import logging
from datetime import datetime, timezone

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from .errors import CertKeeperError, PolicyError
from .manager import CertificateManager

logger = logging.getLogger(__name__)

RENEWAL_JOB_ID = 'renewal_check'

RENEWED = "renewed"
NOT_DUE = "not_due"
MISSING = "missing"
FAILED = "failed"


class RenewalScheduler:
    """Periodically renews one certificate directory.

    Each run is a single attempt; a failed run is simply tried again at the
    next interval.
    """

    def __init__(
        self,
        manager: CertificateManager,
        certs_dir: str,
        email: str,
        check_interval: int = 86400,
        atomic: bool = False,
    ):
        self.manager = manager
        self.certs_dir = certs_dir
        self.email = email
        self.check_interval = check_interval
        self.atomic = atomic
        self.scheduler = BackgroundScheduler(
            jobstores={
                'default': MemoryJobStore()
            },
            executors={
                'default': ThreadPoolExecutor(max_workers=1)
            },
            job_defaults={
                'coalesce': True,
                'max_instances': 1
            }
        )

    def start(self, run_now: bool = True):
        """Start the scheduler."""
        if self.scheduler.running:
            return
        self.scheduler.start()
        job_kwargs = {'next_run_time': datetime.now(timezone.utc)} if run_now else {}
        self.scheduler.add_job(
            self.check_and_renew,
            'interval',
            seconds=self.check_interval,
            id=RENEWAL_JOB_ID,
            replace_existing=True,
            **job_kwargs
        )
        logger.info(f"Scheduler started with check interval: {self.check_interval}s")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self.scheduler.running

    def check_and_renew(self) -> str:
        """Renew the certificate if it is due and report what happened."""
        store = self.manager.store_factory(self.certs_dir)
        if not store.is_cert_available():
            logger.warning(f"No certificate available in {self.certs_dir}, skipping renewal")
            return MISSING

        try:
            certificate = self.manager.renew_and_save(self.certs_dir, self.email, atomic=self.atomic)
        except PolicyError as e:
            logger.info(f"Certificate in {self.certs_dir} not yet due: {e.days_remaining} days remaining")
            return NOT_DUE
        except CertKeeperError as e:
            logger.error(f"Error renewing certificate in {self.certs_dir}: {e}")
            return FAILED

        logger.info(f"Successfully renewed certificate for {certificate.domain}")
        return RENEWED
