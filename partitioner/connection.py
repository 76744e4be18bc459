from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from config import POSTGRES_CONFIG
from partitioner.errors import StatementFailure
from utils.logger import get_logger

# initializing logger
logger = get_logger(__name__)


# function to connect to database
def get_db_connection():
    """
    Establishes a SQLAlchemy engine connection to a PostgreSQL database using credentials from config.

    Returns:
        sqlalchemy.engine.Engine: a SQLAlchemy engine instance connected to the specified database.
    """
    try:
        engine = create_engine(
            f"postgresql+psycopg2://{POSTGRES_CONFIG['user']}:{POSTGRES_CONFIG['password']}@"
            f"{POSTGRES_CONFIG['host']}:{POSTGRES_CONFIG['port']}/{POSTGRES_CONFIG['database']}"
        )
        logger.info("Successfully connected to Postgres.")
        return engine

    except Exception as e:
        logger.error(f"PostgreSQL connection error: {str(e)}")
        raise


class SqlExecutor:
    """
    Runs statements on one SQLAlchemy connection. The caller owns the transaction,
    so every statement of a reconciliation run shares one snapshot and commits or
    rolls back together.

    Parameters:
        conn (sqlalchemy.engine.Connection): connection inside an open transaction.
    """

    def __init__(self, conn):
        self.conn = conn

    def execute(self, sql: str):
        """Executes a DDL/DML statement, raising StatementFailure if the database rejects it."""
        logger.debug(f"Executing: {sql}")
        try:
            self.conn.execute(text(sql))
        except SQLAlchemyError as e:
            logger.error(f"Statement failed: {str(e)}")
            raise StatementFailure(sql, e) from e

    def query(self, sql: str, params: dict = None) -> list:
        """
        Runs a SELECT and returns its rows.

        Returns:
            list: one dict per row, keyed by column name.
        """
        try:
            result = self.conn.execute(text(sql), params or {})
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.error(f"Catalog query failed: {str(e)}")
            raise StatementFailure(sql, e) from e
