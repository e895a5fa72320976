import os

from apscheduler.schedulers.background import BackgroundScheduler


scheduler = BackgroundScheduler()


def run_subscription_sweep(app):
    broker = app.extensions["sync_broker"]
    closed = broker.sweep_idle(app.config["SYNC_SUBSCRIPTION_IDLE_SECONDS"])
    if closed:
        app.logger.info("Closed %s idle sync subscription(s)", closed)


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    interval_seconds = app.config["SYNC_SWEEP_INTERVAL_SECONDS"]
    if not scheduler.get_jobs():
        scheduler.add_job(
            run_subscription_sweep,
            "interval",
            seconds=interval_seconds,
            kwargs={"app": app},
            id="sync_subscription_sweep",
            replace_existing=True,
        )
        scheduler.start()
