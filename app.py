import logging

from flask import Flask
from config import Config
from routes import health_bp, public_bp, dashboard_bp

from models import db
from models.db import enable_sqlite_write_locks
from flask_migrate import Migrate


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(dashboard_bp)
    # public routes are slug-prefixed catch-alls, keep them last
    app.register_blueprint(public_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        enable_sqlite_write_locks(db.engine, app.config.get("SQLITE_BUSY_TIMEOUT_SECONDS", 30))

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    if app.config.get("SCHEDULER_ENABLED"):
        start_scheduler(app)

    return app

#-------------------------
from apscheduler.schedulers.background import BackgroundScheduler
from jobs.daily_slots import schedule_daily_slot_generation

logger = logging.getLogger(__name__)


def start_scheduler(app):
    scheduler = BackgroundScheduler()
    schedule_daily_slot_generation(scheduler, app)
    scheduler.start()
    app.extensions["scheduler"] = scheduler
    logger.info(
        "Slot generation scheduled daily at %02d:%02d",
        app.config["SLOT_GENERATION_HOUR"], app.config["SLOT_GENERATION_MINUTE"],
    )
    return scheduler

#-------------------------
from datetime import date

import click
from models.business import Business
from scheduling.generator import generate_for_all, generate_for_business


def register_cli(app):
    @app.cli.command("generate-slots")
    @click.option("--slug", default=None, help="Only this business.")
    @click.option("--date", "day", default=None, help="YYYY-MM-DD; default is the rolling window.")
    @click.option("--days", type=int, default=None, help="Rolling window length when no date is given.")
    def generate_slots(slug, day, days):
        """Generate slots for one date or the rolling window."""
        target = date.fromisoformat(day) if day else None
        q = Business.query.filter_by(is_active=True)
        if slug:
            q = q.filter_by(slug=slug.strip().lower())
        businesses = q.order_by(Business.id).all()
        if not businesses:
            click.echo("No matching business")
            return

        for business in businesses:
            result = generate_for_business(business, target, window_days=days)
            click.echo(f"{business.slug}: {result.message}")

    @app.cli.command("generate-daily-slots")
    def generate_daily_slots():
        """Tomorrow's slots for every active business (what the scheduler runs)."""
        for outcome in generate_for_all():
            if outcome["success"]:
                click.echo(f"business {outcome['business_id']}: {outcome['slots_created']} slots created")
            else:
                click.echo(f"business {outcome['business_id']}: FAILED ({outcome['error']})")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
