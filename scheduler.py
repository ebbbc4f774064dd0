from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.notifications import refresh_notifications


def notification_job(app):
    """Recompute the stored notification set. A failed run waits for the next tick."""
    with app.app_context():
        try:
            result = refresh_notifications()
        except SQLAlchemyError:
            db.session.rollback()
            app.logger.exception("Scheduled notification refresh failed")
            return None
        app.logger.info(
            "Notifications refreshed: %(total)s active, %(added)s added, %(updated)s updated, %(removed)s removed",
            result,
        )
        return result


def start_scheduler(app):
    minutes = int(app.config.get('NOTIFICATION_POLL_MINUTES', 5))
    scheduler = BackgroundScheduler(timezone=app.config.get('APP_TIMEZONE', 'UTC'))
    if app.config.get('PERSIST_NOTIFICATIONS', True):
        scheduler.add_job(lambda: notification_job(app), 'interval', minutes=minutes,
                          id='refresh_notifications', replace_existing=True)
    scheduler.start()
    app.logger.info("Scheduler started (notifications every %s min)", minutes)
    return scheduler
