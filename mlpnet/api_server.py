"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API serving digit classification with pretrained networks.

This module provides endpoints for:
- Uploading pretrained weights (JSON matrices or an .npz archive)
- Classifying 28x28 images, optionally returning a rendered PNG
- Listing, inspecting and deleting stored networks

The server uses:
- Flask for REST API endpoints
- SQLite (via model_persistence) for network storage
- matplotlib for rendering classified images
"""

import base64
import io
import logging
import math
import os
import sys
import uuid
from typing import Any, Dict, List, Optional

import numpy as np
from flask import Flask, jsonify, request
from flask_cors import CORS

# Use non-GUI backend for matplotlib (required for server environments)
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from mlpnet import __version__
from mlpnet.errors import MatrixError
from mlpnet.matrix import Matrix
from mlpnet.mlp_network import IMG_DIMS, Digit, MlpNetwork
from mlpnet.model_persistence import (
    DEFAULT_MODEL_DIR,
    delete_network,
    delete_old_networks,
    get_network_metadata,
    list_saved_networks,
    load_network,
    save_network,
)
from mlpnet.weights_loader import check_shapes, load_npz

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: silence request logs, keep our own logs at INFO
    - In development: level from LOG_LEVEL (default INFO)
    """
    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    is_production = os.getenv('FLASK_ENV') == 'production'

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if is_production:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('mlpnet').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def is_finite_number(value: Any) -> bool:
    """Check for a real JSON number; booleans, NaN and infinities do not count."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def json_body() -> Dict[str, Any]:
    """
    Return the request's JSON object, or an empty dict for a missing body.

    Raises:
        ValueError: If the body is JSON but not an object
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def parse_image(values: Any) -> Matrix:
    """
    Convert a JSON image (28x28 nested list or 784 flat list) to a Matrix.

    Raises:
        ValueError: If the values are not numeric or not 784 of them
    """
    if values is None:
        raise ValueError("Missing 'image'")
    try:
        array = np.asarray(values, dtype=np.float32)
    except TypeError as e:
        raise ValueError(f"Image must contain numbers: {e}") from e

    expected = IMG_DIMS.rows * IMG_DIMS.cols
    if array.size != expected:
        raise ValueError(
            f"Image must have {expected} pixels, got {array.size}"
        )
    return Matrix.from_array(array.reshape(IMG_DIMS))


def parse_network(data: Dict[str, Any]) -> MlpNetwork:
    """
    Build a network from JSON ``weights`` and ``biases`` lists.

    Raises:
        ValueError: If the lists are missing or malformed
        MatrixSizeError: If a matrix has the wrong shape
    """
    weights = data.get('weights')
    biases = data.get('biases')
    if not isinstance(weights, list) or not isinstance(biases, list):
        raise ValueError("'weights' and 'biases' must be lists of matrices")

    try:
        weight_mats = [Matrix.from_array(w) for w in weights]
        bias_mats = [Matrix.from_array(b) for b in biases]
    except TypeError as e:
        raise ValueError(f"Matrices must contain numbers: {e}") from e

    check_shapes(weight_mats, bias_mats)
    return MlpNetwork(weight_mats, bias_mats)


def matrix_to_float_list(mat: Matrix) -> List[float]:
    """Flatten a Matrix to a list of floats (for JSON serialization)."""
    return [float(val) for val in mat]


def create_digit_image(image: Matrix, digit: Digit) -> str:
    """
    Create a base64-encoded PNG image of a classified digit.

    Args:
        image: The 28x28 image that was classified
        digit: The classification result

    Returns:
        Base64-encoded PNG image string
    """
    plt.figure(figsize=(3, 3))
    plt.imshow(image.to_numpy().reshape(IMG_DIMS), cmap='gray')
    plt.title(f"Predicted: {digit.value} ({digit.probability:.1%})")
    plt.axis('off')

    # Save image to a bytes buffer instead of a file
    buffer = io.BytesIO()
    plt.savefig(buffer, format='png', bbox_inches='tight')
    buffer.seek(0)
    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    plt.close()

    return img_base64


# ============================================================================
# APPLICATION FACTORY
# ============================================================================

def create_app(model_dir: Optional[str] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        model_dir: Directory of the networks database; defaults to the
            MLPNET_MODEL_DIR environment variable, then ``models``

    Returns:
        The configured Flask app
    """
    model_dir = model_dir or os.getenv('MLPNET_MODEL_DIR', DEFAULT_MODEL_DIR)

    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": "*"}})

    # Networks currently loaded in memory: {network_id: network_info}
    active_networks: Dict[str, Dict[str, Any]] = {}

    def reload_saved_networks() -> None:
        """Load every network saved in the database into memory."""
        saved_networks = list_saved_networks(model_dir)
        if not saved_networks:
            logger.info("No saved networks to reload")
            return

        loaded_count = 0
        for net_info in saved_networks:
            network_id = net_info['network_id']
            net = load_network(network_id, model_dir)
            if net is None:
                logger.warning(f"Failed to load network {network_id}")
                continue
            active_networks[network_id] = {
                'network': net,
                'architecture': net_info['architecture'],
                'accuracy': net_info['accuracy'],
                'description': net_info['description']
            }
            loaded_count += 1

        logger.info(f"Reloaded {loaded_count} network(s) from database")

    reload_saved_networks()

    # ------------------------------------------------------------------------
    # API ENDPOINTS
    # ------------------------------------------------------------------------

    @app.route('/api/status', methods=['GET'])
    def get_status():
        """Return server status and the number of loaded networks."""
        return jsonify({
            'status': 'online',
            'version': __version__,
            'active_networks': len(active_networks)
        }), 200

    @app.route('/api/networks', methods=['POST'])
    def create_network():
        """
        Register a pretrained network.

        Request body, either JSON:
            {
                'weights': [w1, w2, w3, w4],   # nested lists
                'biases': [b1, b2, b3, b4],
                'accuracy': 0.97,              # optional
                'description': 'mnist v1'      # optional
            }
        or multipart form data with an .npz archive under 'file' and the
        optional 'accuracy'/'description' as form fields.

        Returns:
            JSON with network_id and architecture
        """
        try:
            if 'file' in request.files:
                form = request.form
                net = load_npz(io.BytesIO(request.files['file'].read()))
                accuracy = form.get('accuracy')
                if accuracy is not None:
                    accuracy = float(accuracy)
                description = form.get('description', '')
            else:
                data = json_body()
                net = parse_network(data)
                accuracy = data.get('accuracy')
                description = data.get('description', '')
        except (MatrixError, ValueError) as e:
            logger.warning(f"Rejected network upload: {e}")
            return jsonify({'error': str(e)}), 400

        if accuracy is not None and (
                not is_finite_number(accuracy) or not 0.0 <= accuracy <= 1.0):
            return jsonify({'error': 'accuracy must be between 0.0 and 1.0'}), 400

        network_id = str(uuid.uuid4())
        active_networks[network_id] = {
            'network': net,
            'architecture': net.sizes,
            'accuracy': accuracy,
            'description': description
        }
        saved = save_network(
            net, network_id, model_dir=model_dir,
            accuracy=accuracy, description=description
        )
        if not saved:
            logger.error(f"Network {network_id} kept in memory only")

        logger.info(f"Created network {network_id} with architecture {net.sizes}")

        return jsonify({
            'network_id': network_id,
            'architecture': net.sizes,
            'saved': saved,
            'status': 'created'
        }), 201

    @app.route('/api/networks', methods=['GET'])
    def list_networks():
        """List all available networks (both in-memory and saved to disk)."""
        in_memory = [
            {
                'network_id': nid,
                'architecture': info['architecture'],
                'accuracy': info['accuracy'],
                'description': info['description'],
                'status': 'in_memory'
            }
            for nid, info in active_networks.items()
        ]

        saved_only = []
        for net in list_saved_networks(model_dir):
            if net['network_id'] not in active_networks:
                net['status'] = 'saved'
                saved_only.append(net)

        logger.debug(
            f"Listing networks: {len(in_memory)} in memory, {len(saved_only)} saved"
        )
        return jsonify({'networks': in_memory + saved_only}), 200

    @app.route('/api/networks/<network_id>', methods=['GET'])
    def get_network(network_id: str):
        """Return metadata of one network."""
        metadata = get_network_metadata(network_id, model_dir)
        if metadata is None and network_id in active_networks:
            info = active_networks[network_id]
            metadata = {
                'network_id': network_id,
                'architecture': info['architecture'],
                'accuracy': info['accuracy'],
                'description': info['description']
            }
        if metadata is None:
            return jsonify({'error': 'Network not found'}), 404
        return jsonify(metadata), 200

    @app.route('/api/networks/<network_id>', methods=['DELETE'])
    def delete_network_endpoint(network_id: str):
        """Delete a network from both memory and disk."""
        deleted_from_memory = active_networks.pop(network_id, None) is not None
        deleted_from_disk = delete_network(network_id, model_dir)

        if not deleted_from_memory and not deleted_from_disk:
            logger.warning(f"Delete attempted for non-existent network: {network_id}")
            return jsonify({'error': 'Network not found'}), 404

        logger.info(
            f"Deleted network {network_id}: "
            f"memory={deleted_from_memory}, disk={deleted_from_disk}"
        )
        return jsonify({
            'network_id': network_id,
            'deleted_from_memory': deleted_from_memory,
            'deleted_from_disk': deleted_from_disk
        }), 200

    @app.route('/api/networks/<network_id>/classify', methods=['POST'])
    def classify(network_id: str):
        """
        Classify one image.

        Request body:
            {
                'image': [[...28 values...], ...28 rows...],  # or 784 values
                'render': false                              # optional
            }

        Returns:
            JSON with digit, probability, network output and, if requested,
            a base64 PNG of the image
        """
        if network_id not in active_networks:
            logger.warning(f"Classification requested for non-existent network: {network_id}")
            return jsonify({'error': 'Network not found'}), 404

        try:
            data = json_body()
            image = parse_image(data.get('image'))
        except (MatrixError, ValueError) as e:
            return jsonify({'error': str(e)}), 400

        net = active_networks[network_id]['network']
        try:
            # feedforward vectorizes its argument, keep the 28x28 original
            output = net.feedforward(image.copy())
        except MatrixError as e:
            logger.exception(f"Classification failed for network {network_id}: {e}")
            return jsonify({'error': 'Internal server error'}), 500
        digit = Digit.from_output(output)

        logger.debug(
            f"Network {network_id} classified image as {digit.value} "
            f"(p={digit.probability:.4f})"
        )

        response = {
            'network_id': network_id,
            'digit': digit.value,
            'probability': digit.probability,
            'network_output': matrix_to_float_list(output)
        }
        if data.get('render'):
            response['image_data'] = create_digit_image(image, digit)
        return jsonify(response), 200

    @app.route('/api/networks/cleanup', methods=['POST'])
    def cleanup_old_networks_endpoint():
        """
        Delete saved networks older than the given number of days.

        Request body (optional):
            {'days': 2}  # defaults to 2
        """
        try:
            days = json_body().get('days', 2)
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

        if not is_finite_number(days) or days < 0:
            return jsonify({'error': 'days must be a non-negative number'}), 400

        saved_before = {net['network_id'] for net in list_saved_networks(model_dir)}
        deleted_count = delete_old_networks(days=int(days), model_dir=model_dir)
        if deleted_count == -1:
            return jsonify({'error': 'Error occurred during cleanup'}), 500

        # Networks that were never saved stay in memory
        saved_after = {net['network_id'] for net in list_saved_networks(model_dir)}
        for nid in saved_before - saved_after:
            if active_networks.pop(nid, None) is not None:
                logger.info(f"Removed network {nid} from memory (deleted from database)")

        logger.info(f"Cleanup: deleted {deleted_count} network(s) older than {days} day(s)")
        return jsonify({
            'deleted_count': deleted_count,
            'days': days,
            'message': f'Successfully deleted {deleted_count} network(s) older than {days} day(s)'
        }), 200

    return app


# ============================================================================
# SERVER STARTUP
# ============================================================================

if __name__ == '__main__':
    is_cloud = bool(os.environ.get('PORT'))
    port = int(os.environ.get('PORT', 8000))

    if is_cloud:
        logger.info(f"Starting server in production mode on port {port}")
    else:
        logger.info(f"Starting server at http://localhost:{port}/")

    try:
        create_app().run(host='0.0.0.0', port=port, debug=not is_cloud, use_reloader=False)
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise
