"""Mapped models used by the integration tests."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from aftercommit import (
    CommitCallbacksMixin,
    Observer,
    TransactionManager,
    after_commit,
    after_rollback,
)


class Base(DeclarativeBase):
    pass


class Car(CommitCallbacksMixin, Base):
    __tablename__ = "cars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    counter: Mapped[int] = mapped_column(Integer, default=0)
    label: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    called = []
    do_after_create_save = False
    raise_error = False

    @after_commit
    def record_always(self):
        self.called.append("always")

    @after_commit(on="create")
    def record_create(self):
        self.called.append("create")

    @after_commit(on="update")
    def record_update(self):
        self.called.append("update")

    @after_commit(on="destroy")
    def record_destroy(self):
        self.called.append("destroy")

    @after_commit(when="do_after_create_save")
    def save_once(self):
        self.called.append("save_once")
        if self.counter != 3:
            self.counter = 3
            TransactionManager.of(self).save(self)

    @after_commit(when="raise_error")
    def maybe_raise(self):
        raise RuntimeError("car callback failed")


class FuBear(CommitCallbacksMixin, Base):
    __tablename__ = "fu_bears"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    called = []

    def validation_errors(self):
        return [] if self.name else ["name can't be blank"]

    @after_commit
    def record_commit(self):
        self.called.append("always")


class MultiBar(CommitCallbacksMixin, Base):
    __tablename__ = "multi_bars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    called = []

    @after_commit
    def one(self):
        self.called.append("one")

    @after_commit
    def two(self):
        self.called.append("two")


class Ledger(CommitCallbacksMixin, Base):
    __tablename__ = "ledgers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    called = []

    @after_commit(on="create")
    def record_commit(self):
        self.called.append("committed")

    @after_rollback(on="create")
    def record_rollback(self):
        self.called.append("rolled_back")


class CarObserver(Observer):
    observed = (Car,)

    recording = False
    callback = None

    def after_commit(self, car):
        self._record(car, "observed_after_commit")

    def after_rollback(self, car):
        self._record(car, "observed_after_rollback")

    def _record(self, car, name):
        if CarObserver.callback is not None:
            CarObserver.callback()
        if CarObserver.recording:
            car.called.append(name)


MODELS = (Car, FuBear, MultiBar, Ledger)
