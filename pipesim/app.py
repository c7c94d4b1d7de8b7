import logging

from flask import Flask, jsonify, request
from flask_cors import CORS

from pipesim.Errors import InvalidLineIndex
from pipesim.Simulator import Simulator

logger = logging.getLogger(__name__)


def create_app(config_path=None, simulator=None):
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes

    sim = simulator or Simulator(config_path=config_path)
    app.config['SIMULATOR'] = sim

    def _flag(data):
        if 'enabled' not in data or not isinstance(data['enabled'], bool):
            return None
        return data['enabled']

    @app.errorhandler(InvalidLineIndex)
    def bad_line(e):
        return jsonify({'error': str(e)}), 404

    @app.route('/load', methods=['POST'])
    def load_program():
        data = request.get_json(silent=True) or {}
        program = data.get('program')
        if program is None:
            return jsonify({'error': "missing 'program'"}), 400
        if isinstance(program, str):
            program = program.split()
        if data.get('reset', False):
            sim.reset()
        try:
            count = sim.load_program(program)
        except (TypeError, ValueError) as e:
            return jsonify({'error': str(e)}), 400
        return jsonify({'loaded': count, 'state': sim.get_state()})

    @app.route('/step', methods=['POST'])
    def step():
        sim.step()
        return jsonify(sim.get_state())

    @app.route('/run', methods=['POST'])
    def run_program():
        sim.run()
        return jsonify(sim.get_state())

    @app.route('/reset', methods=['POST'])
    def reset():
        sim.reset()
        return jsonify(sim.get_state())

    @app.route('/toggle-cache', methods=['POST'])
    def toggle_cache():
        enabled = _flag(request.get_json(silent=True) or {})
        if enabled is None:
            return jsonify({'error': "'enabled' must be true or false"}), 400
        sim.set_cache_enabled(enabled)
        return jsonify({'cacheEnabled': sim.storage.cache_enabled})

    @app.route('/toggle-pipeline', methods=['POST'])
    def toggle_pipeline():
        enabled = _flag(request.get_json(silent=True) or {})
        if enabled is None:
            return jsonify({'error': "'enabled' must be true or false"}), 400
        sim.set_pipelined(enabled)
        return jsonify({'pipelined': sim.pipelined})

    @app.route('/state', methods=['GET'])
    def state():
        return jsonify(sim.get_state())

    @app.route('/stats', methods=['GET'])
    def stats():
        return jsonify(sim.get_performance_stats())

    @app.route('/cache/<int:index>', methods=['GET'])
    def cache_line(index):
        return jsonify(sim.view_cache_line(index))

    @app.route('/memory/<int:index>', methods=['GET'])
    def memory_line(index):
        return jsonify({'index': index, 'data': sim.view_memory_line(index)})

    return app


if __name__ == '__main__':
    logging.basicConfig(level='INFO')
    create_app().run(port=5000)
