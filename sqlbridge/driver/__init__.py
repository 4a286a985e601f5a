"""Connections, commands, parameters, readers and the connection pool."""

from sqlbridge.driver.command import Command, CommandState
from sqlbridge.driver.connection import Connection, ConnectionState, Transaction
from sqlbridge.driver.parameters import Parameter, ParameterCollection, ParameterDirection
from sqlbridge.driver.pool import ConnectionPool
from sqlbridge.driver.reader import DataReader

__all__ = (
    "Command",
    "CommandState",
    "Connection",
    "ConnectionPool",
    "ConnectionState",
    "DataReader",
    "Parameter",
    "ParameterCollection",
    "ParameterDirection",
    "Transaction",
)
