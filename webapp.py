#!/usr/bin/env python3
"""
Flask Web UI for the sign-in activity report
Provides a simple local web form for the same pipeline the CLI runs
"""

import os
import uuid
from datetime import datetime
from flask import Flask, render_template, request, redirect, url_for, send_file, flash, jsonify
from werkzeug.utils import secure_filename

from core.classifier import MAX_THRESHOLD_DAYS, MIN_THRESHOLD_DAYS
from core.errors import SignInToolError
from core.pipeline import FILE_MODE, GROUP_MODE, run_sign_in_report
from utils.config import Config
from utils.logging_setup import setup_logging

app = Flask(__name__)
app.secret_key = os.environ.get('FLASK_SECRET_KEY', 'change-me-local-only')

# Configuration
UPLOAD_FOLDER = 'uploads'
OUTPUT_FOLDER = 'downloads'
ALLOWED_EXTENSIONS = {'csv', 'txt', 'xlsx'}
MAX_FILE_SIZE = 16 * 1024 * 1024  # 16MB max file size

app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['OUTPUT_FOLDER'] = OUTPUT_FOLDER
app.config['MAX_CONTENT_LENGTH'] = MAX_FILE_SIZE


def allowed_file(filename):
    """Check if file extension is allowed"""
    if '.' not in filename:
        return False
    return filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


@app.route('/')
def index():
    """Main page with upload form"""
    config = Config()
    return render_template('index.html',
                           default_threshold=config.default_threshold_days,
                           min_threshold=MIN_THRESHOLD_DAYS,
                           max_threshold=MAX_THRESHOLD_DAYS)


@app.route('/run', methods=['POST'])
def run_report():
    """Handle the form: resolve users from a file or group and build the report"""
    mode = request.form.get('mode', FILE_MODE)
    threshold = request.form.get('threshold', '').strip() or None
    job_id = str(uuid.uuid4())
    input_path = None

    if mode == FILE_MODE:
        file = request.files.get('file')
        if file is None or file.filename == '':
            flash('No file selected', 'error')
            return redirect(url_for('index'))
        if not allowed_file(file.filename):
            flash(f'Invalid file type. Allowed types: {", ".join(sorted(ALLOWED_EXTENSIONS))}', 'error')
            return redirect(url_for('index'))

        os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
        filename = secure_filename(file.filename)
        input_path = os.path.join(app.config['UPLOAD_FOLDER'], f"{job_id}_{filename}")
        file.save(input_path)
        source = input_path
    elif mode == GROUP_MODE:
        source = request.form.get('group', '').strip()
    else:
        flash('Invalid input mode selected', 'error')
        return redirect(url_for('index'))

    result = process_request(job_id, mode, source, threshold, input_path)

    if result['success']:
        return render_template('results.html',
                               job_id=job_id,
                               stats=result['stats'],
                               output_file=result['output_file'],
                               fallback=result['fallback'])

    flash(f'Processing failed: {result["error"]}', 'error')
    return redirect(url_for('index'))


def process_request(job_id, mode, source, threshold, input_path=None):
    """Run the pipeline for one form submission"""
    try:
        app.logger.info(f"Starting job {job_id} ({mode})")

        config = Config()
        if not config.validate_graph_config():
            missing_vars = config.get_missing_graph_vars()
            return {'success': False, 'error': f'Missing Graph configuration: {", ".join(missing_vars)}'}

        os.makedirs(app.config['OUTPUT_FOLDER'], exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = os.path.join(app.config['OUTPUT_FOLDER'], f"{job_id}_signin_{timestamp}.csv")

        run = run_sign_in_report(
            config, mode, source, output_path,
            threshold_days=threshold,
        )

        summary = run.report.summary()
        app.logger.info(f"Job {job_id} completed successfully")
        return {
            'success': True,
            'output_file': run.output_path.name,
            'fallback': str(run.output_path) if run.used_fallback else None,
            'stats': {
                'threshold_days': run.report.threshold_days,
                'total_records': summary.total,
                'successful_lookups': summary.success,
                'failed_lookups': summary.error,
                'within_threshold': summary.within_threshold,
                'outside_threshold': summary.outside_threshold,
                'skipped_rows': run.skipped_rows,
                'success_rate': summary.success_rate,
            },
        }

    except SignInToolError as e:
        app.logger.error(f"Job {job_id} failed: {e}")
        return {'success': False, 'error': str(e)}
    finally:
        # Clean up input file
        if input_path and os.path.exists(input_path):
            try:
                os.remove(input_path)
            except OSError as e:
                app.logger.warning(f"Could not remove upload {input_path}: {e}")


@app.route('/download/<filename>')
def download_file(filename):
    """Download a generated report"""
    file_path = os.path.join(app.config['OUTPUT_FOLDER'], secure_filename(filename))
    if not os.path.exists(file_path):
        flash('File not found', 'error')
        return redirect(url_for('index'))

    return send_file(os.path.abspath(file_path), as_attachment=True)


@app.route('/health')
def health_check():
    """Health check endpoint"""
    config = Config()
    graph_config_valid = config.validate_graph_config()

    return jsonify({
        'status': 'healthy' if graph_config_valid else 'configuration_error',
        'graph_config_valid': graph_config_valid,
        'modes_available': [FILE_MODE, GROUP_MODE],
    })


if __name__ == '__main__':
    setup_logging(prefix="webapp")

    # Check configuration on startup
    config = Config()
    if not config.validate_graph_config():
        missing_vars = config.get_missing_graph_vars()
        app.logger.warning(f"Missing Graph configuration: {', '.join(missing_vars)}")
        print("Warning: missing Graph configuration. The application will start but runs will fail.")
        print(f"   Missing: {', '.join(missing_vars)}")
    else:
        app.logger.info("Graph configuration validated successfully")

    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    print(f"Starting sign-in report Web UI on http://127.0.0.1:{port}")
    app.run(host='127.0.0.1', port=port, debug=debug)
