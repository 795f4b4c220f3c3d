# carelog/dependencies.py
from .database import db
from .service.board import SnapshotCache
from .service.completion import CompletionReconciler
from .service.rescheduler import Rescheduler
from .service.store import MongoStore

store = MongoStore(db)
snapshot_cache = SnapshotCache()
reconciler = CompletionReconciler()
rescheduler = Rescheduler()


def get_store():
    return store


def get_cache():
    return snapshot_cache


def get_reconciler():
    return reconciler


def get_rescheduler():
    return rescheduler
