"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for pretrained networks.

Each network is stored as a compressed ``.npz`` blob alongside queryable
metadata (layer sizes, reported accuracy, description).
"""

import io
import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional

from mlpnet.mlp_network import MlpNetwork
from mlpnet.weights_loader import load_npz, save_npz

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_MODEL_DIR = 'models'
DB_FILENAME = 'networks.db'

_METADATA_COLUMNS = '''
    network_id,
    architecture,
    accuracy,
    description,
    created_at,
    updated_at
'''


class ModelDatabase:
    """
    Manages the SQLite database of stored networks.

    The database stores:
    - Network metadata (layer sizes, accuracy, description)
    - The weight and bias matrices as an ``.npz`` blob
    """

    def __init__(self, db_path: str = os.path.join(DEFAULT_MODEL_DIR, DB_FILENAME)):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        with self._get_connection() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    network_data BLOB NOT NULL,
                    accuracy REAL,
                    description TEXT NOT NULL DEFAULT '',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
            conn.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'accuracy': row['accuracy'],
            'description': row['description'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: MlpNetwork,
        network_id: str,
        accuracy: Optional[float] = None,
        description: str = ''
    ) -> bool:
        """
        Save a network, replacing any network with the same id.

        Args:
            network: Network to save
            network_id: Unique identifier for the network
            accuracy: Reported accuracy of the weights (0.0 to 1.0)
            description: Free-form note about where the weights came from

        Returns:
            bool: True once saved

        Raises:
            ValueError: If accuracy is out of valid range
        """
        if accuracy is not None and not 0.0 <= accuracy <= 1.0:
            raise ValueError(
                f"Accuracy must be between 0.0 and 1.0, got {accuracy}"
            )

        buffer = io.BytesIO()
        save_npz(network, buffer)

        with self._get_connection() as conn:
            # Keep the original creation time when replacing a network
            conn.execute('''
                INSERT INTO networks
                (network_id, architecture, network_data, accuracy, description)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    network_data = excluded.network_data,
                    accuracy = excluded.accuracy,
                    description = excluded.description,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                json.dumps(network.sizes),
                buffer.getvalue(),
                accuracy,
                description
            ))

        logger.info(
            f"Saved network '{network_id}' with architecture "
            f"{network.sizes}, accuracy={accuracy}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[MlpNetwork]:
        """
        Load a network from the database.

        Returns:
            MlpNetwork or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"Network '{network_id}' not found")
            return None

        network = load_npz(io.BytesIO(row['network_data']))
        logger.info(f"Loaded network '{network_id}'")
        return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """
        List all networks with metadata, newest first.

        Returns:
            List of network metadata dictionaries
        """
        with self._get_connection() as conn:
            rows = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks '
                f'ORDER BY created_at DESC'
            ).fetchall()

        networks = []
        for row in rows:
            metadata = self._row_to_metadata(row)
            sizes = metadata['architecture']
            metadata['weights_shape'] = [
                [sizes[i + 1], sizes[i]] for i in range(len(sizes) - 1)
            ]
            metadata['biases_shape'] = [
                [sizes[i + 1], 1] for i in range(len(sizes) - 1)
            ]
            networks.append(metadata)

        logger.debug(f"Listed {len(networks)} networks")
        return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )
            deleted = cursor.rowcount > 0

        if deleted:
            logger.info(f"Deleted network '{network_id}'")
        else:
            logger.warning(f"Could not delete network '{network_id}': not found")
        return deleted

    def get_network_metadata_from_db(
        self,
        network_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Get network metadata without loading the matrices.

        Returns:
            Metadata dictionary or None if not found
        """
        with self._get_connection() as conn:
            row = conn.execute(
                f'SELECT {_METADATA_COLUMNS} FROM networks WHERE network_id = ?',
                (network_id,)
            ).fetchone()

        if row is None:
            logger.warning(f"Metadata for network '{network_id}' not found")
            return None
        return self._row_to_metadata(row)

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM networks WHERE created_at < datetime('now', ?)",
                (f'-{days} days',)
            )
            deleted_count = cursor.rowcount

        logger.info(f"Deleted {deleted_count} network(s) older than {days} day(s)")
        return deleted_count


# Database instances, one per model directory
_databases: Dict[str, ModelDatabase] = {}


def _get_db(model_dir: str) -> ModelDatabase:
    """Get or create the database for ``model_dir``."""
    db = _databases.get(model_dir)
    if db is None:
        db = ModelDatabase(db_path=os.path.join(model_dir, DB_FILENAME))
        _databases[model_dir] = db
    return db


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network: MlpNetwork,
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR,
    accuracy: Optional[float] = None,
    description: str = ''
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        accuracy: The reported accuracy of the weights (0.0 to 1.0)
        description: Free-form note stored with the network

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> save_network(net, "mnist_v1", accuracy=0.97)
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(
            network, network_id, accuracy, description
        )
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(f"Unexpected error saving network '{network_id}': {e}")
        return False


def load_network(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[MlpNetwork]:
    """
    Load a network from the SQLite database.

    Returns:
        The loaded network or None if not found or unreadable
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)
    except ValueError as e:
        logger.error(f"Corrupt weights for network '{network_id}': {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None
    except Exception as e:
        logger.exception(f"Unexpected error loading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: str = DEFAULT_MODEL_DIR) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Example:
        >>> for net in list_saved_networks():
        ...     print(f"{net['network_id']}: {net['architecture']}")
    """
    try:
        return _get_db(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []
    except Exception as e:
        logger.exception(f"Unexpected error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: str = DEFAULT_MODEL_DIR) -> bool:
    """
    Delete a saved network.

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False
    except Exception as e:
        logger.exception(f"Unexpected error deleting network '{network_id}': {e}")
        return False


def get_network_metadata(
    network_id: str,
    model_dir: str = DEFAULT_MODEL_DIR
) -> Optional[Dict[str, Any]]:
    """Get metadata for one network without loading its matrices."""
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error getting metadata for '{network_id}': {e}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error getting metadata for '{network_id}': {e}")
        return None
    except Exception as e:
        logger.exception(f"Unexpected error getting metadata for '{network_id}': {e}")
        return None


def delete_old_networks(days: int = 2, model_dir: str = DEFAULT_MODEL_DIR) -> int:
    """
    Delete saved networks older than ``days`` days.

    Returns:
        Number of deleted networks, or -1 on error
    """
    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)
    except ValueError as e:
        logger.error(f"Invalid cleanup request: {e}")
        return -1
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1
    except Exception as e:
        logger.exception(f"Unexpected error deleting old networks: {e}")
        return -1
