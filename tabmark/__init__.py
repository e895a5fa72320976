import click
from flask import Flask

from tabmark.api import api_bp
from tabmark.auth import auth_bp
from tabmark.config import Config
from tabmark.extensions import db, login_manager, migrate
from tabmark.jobs.scheduler import start_scheduler
from tabmark.models import User
from tabmark.services.channels import ChannelBroker
from tabmark.web import web_bp


def create_app(config_object=Config):
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    app.extensions["sync_broker"] = ChannelBroker(
        prefix=app.config["SYNC_CHANNEL_PREFIX"],
        queue_size=app.config["SYNC_SUBSCRIBER_QUEUE_SIZE"],
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized Tabmark database.")

    @app.cli.command("create-user")
    @click.argument("email")
    @click.password_option()
    @click.option("--name", "full_name", default=None)
    def create_user_command(email, password, full_name):
        user = User(email=email.strip().lower(), full_name=full_name)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        print(f"Created user {user.email} ({user.id}).")

    @app.context_processor
    def inject_globals():
        return {"app_name": "Tabmark"}

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
