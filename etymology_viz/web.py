"""
Analysis HTTP endpoint

POST /api/analyze       {text, timestamp?, previousContext?} -> enrichment
GET  /api/health        service availability
GET  /api/distribution  origin language counts this session
"""

import logging
import argparse
from typing import Optional

from flask import Flask, jsonify, request

from .infra import Config, setup_logging
from .orchestrators import AnalysisOrchestrator, create_orchestrator

logger = logging.getLogger('etymology')


def create_app(orchestrator: Optional[AnalysisOrchestrator] = None) -> Flask:
    app = Flask(__name__)
    orchestrator = orchestrator or create_orchestrator()
    app.config['ORCHESTRATOR'] = orchestrator

    @app.route("/api/analyze", methods=["POST"])
    def analyze():
        payload = request.get_json(silent=True) or {}
        text = payload.get('text') if isinstance(payload, dict) else None
        if not isinstance(text, str) or not text.strip():
            return jsonify({"error": "Text is required"}), 400

        previous_context = payload.get('previousContext')
        if not isinstance(previous_context, str):
            previous_context = None

        try:
            analysis = orchestrator.analyze_text(text, previous_context)
        except Exception as e:
            logger.error(f"Analysis failed: {e}")
            return jsonify({"error": "Failed to analyze lyrics"}), 500

        return jsonify(analysis.to_dict(payload.get('timestamp')))

    @app.route("/api/health")
    def health():
        return jsonify(orchestrator.get_status())

    @app.route("/api/distribution")
    def distribution():
        return jsonify(orchestrator.language_distribution)

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description='Etymology Visualizer - analysis HTTP endpoint')
    parser.add_argument('--host', default='127.0.0.1')
    parser.add_argument('--port', type=int, default=5000)
    parser.add_argument('--log-level', default=Config.LOG_LEVEL)
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    app = create_app()
    app.run(host=args.host, port=args.port, debug=False, threaded=True)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
