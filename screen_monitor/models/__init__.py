# Screen Monitor — Database Models
# Import all models here for SQLAlchemy discovery

from screen_monitor.models.user import User, Company                     # noqa
from screen_monitor.models.screen import VideoScreen                     # noqa
from screen_monitor.models.stored_file import StoredFile                 # noqa
from screen_monitor.models.incident import Incident, IncidentStatus      # noqa
from screen_monitor.models.check import Check, CheckFrame                # noqa
from screen_monitor.models.ping import Ping                              # noqa
