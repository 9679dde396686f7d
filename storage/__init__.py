"""
Storage module - trace recorder and order store.
"""
from storage.base import BaseOrderStore, BaseTraceRecorder
from storage.trade_db import TradeDB
