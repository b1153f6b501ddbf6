"""
Flask web interface for the Sketch Editor Core.

This provides a REST API for the block editing surface: component selection,
palette, workspace edits, generated code and saved projects. Generation
results and palette changes are pushed to clients over Socket.IO.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO

from sketch_editor_core.canvas import Canvas
from sketch_editor_core.capability_gate import COMPONENT_CATALOG
from sketch_editor_core.code_generator import GenerationResult
from sketch_editor_core.exceptions import ProtectedBlockError, SketchEditorError, UnknownType
from sketch_editor_core.models import ComponentInstance, ComponentKind, ValidationError
from sketch_editor_core.node_palette import NodePalette
from sketch_editor_core.settings import SETTING_ENV_VARS, EditorSettings

from . import project_db

logger = logging.getLogger(__name__)

socketio = SocketIO(cors_allowed_origins="*", async_mode='threading')


def _ok(data: Any = None):
    return jsonify({'success': True, 'data': data})


def _fail(error: Exception, status: int = 400):
    body: Dict[str, Any] = {'success': False, 'error': str(error)}
    if isinstance(error, SketchEditorError):
        body['details'] = error.details
        body['error_type'] = type(error).__name__
    return jsonify(body), status


def _status_for(error: Exception) -> int:
    if isinstance(error, UnknownType):
        return 404
    return 400


def _component_dict(instance: ComponentInstance) -> Dict[str, Any]:
    return {'id': instance.id, 'kind': instance.kind.value, 'name': instance.name}


def _parse_components(items: Any) -> List[ComponentInstance]:
    if not isinstance(items, list):
        raise ValidationError("'components' must be a list")
    instances = []
    for item in items:
        if not isinstance(item, dict) or 'id' not in item or 'kind' not in item:
            raise ValidationError("each component needs an 'id' and a 'kind'")
        try:
            kind = ComponentKind(item['kind'])
        except ValueError:
            raise ValidationError(f"unknown component kind {item['kind']!r}")
        instances.append(ComponentInstance(id=str(item['id']), kind=kind, name=item.get('name', '')))
    return instances


def create_app(canvas: Optional[Canvas] = None,
               settings: Optional[EditorSettings] = None) -> Flask:
    """Build the Flask app around one editing session."""
    settings = settings or EditorSettings()
    canvas = canvas or Canvas.create_default(settings)
    palette = NodePalette(canvas.registry)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.environ.get('SKETCH_EDITOR_SECRET_KEY', 'sketch-editor-secret-key')
    app.config['CANVAS'] = canvas
    app.config['EDITOR_SETTINGS'] = settings
    CORS(app)
    socketio.init_app(app)

    def palette_data() -> List[Dict[str, Any]]:
        return palette.to_dict(
            canvas.gate.current_allowed, canvas.components.selection,
            list(canvas.workspace.variables),
        )

    def on_allowed_changed(allowed):
        socketio.emit('palette_refresh', {
            'allowed': sorted(allowed),
            'categories': palette_data(),
        })

    def on_generated(result: GenerationResult):
        socketio.emit('code_generated', result.to_dict())

    canvas.gate.subscribe(on_allowed_changed)
    if canvas.scheduler is not None:
        canvas.scheduler.subscribe(on_generated)

    def current_result() -> GenerationResult:
        result = canvas.scheduler.flush() if canvas.scheduler is not None else None
        return result or canvas.generate()

    # Component selection

    @app.route('/api/components/catalog', methods=['GET'])
    def get_component_catalog():
        """List the component kinds that can be selected."""
        return _ok([descriptor.to_dict() for descriptor in COMPONENT_CATALOG.values()])

    @app.route('/api/components', methods=['GET'])
    def get_components():
        return _ok([_component_dict(c) for c in canvas.components.get_components()])

    @app.route('/api/components', methods=['POST'])
    def add_component():
        """Select a component: {kind, name?, id?}."""
        data = request.get_json(silent=True) or {}
        try:
            kind = ComponentKind(data.get('kind'))
        except ValueError:
            return _fail(ValidationError(f"unknown component kind {data.get('kind')!r}"))
        try:
            instance = canvas.components.add_component(kind, data.get('name', ''), data.get('id'))
            return _ok(_component_dict(instance))
        except SketchEditorError as e:
            return _fail(e, 409)
        except Exception as e:
            logger.exception("Failed to add component")
            return _fail(e, 500)

    @app.route('/api/components/<component_id>', methods=['DELETE'])
    def remove_component(component_id):
        removed = canvas.components.remove_component(component_id)
        return _ok({'removed': removed})

    # Palette

    @app.route('/api/palette', methods=['GET'])
    def get_palette():
        return _ok(palette_data())

    @app.route('/api/blocks/allowed', methods=['GET'])
    def get_allowed_blocks():
        return _ok(canvas.components.get_available_blocks())

    # Workspace edits

    @app.route('/api/workspace', methods=['GET'])
    def get_workspace():
        """Get the workspace document, selection and capability violations."""
        return _ok(canvas.get_state())

    @app.route('/api/workspace/blocks', methods=['POST'])
    def create_block():
        """Place a block: {type, fields?, id?}."""
        data = request.get_json(silent=True) or {}
        try:
            block = canvas.create_block(data.get('type'), data.get('fields'), data.get('id'))
            return _ok({'block_id': block.id, 'workspace': canvas.save()})
        except (SketchEditorError, ValidationError) as e:
            return _fail(e, _status_for(e))
        except Exception as e:
            logger.exception("Failed to create block")
            return _fail(e, 500)

    @app.route('/api/workspace/connect', methods=['POST'])
    def connect_blocks():
        """Connect {block_id} to {parent_id}, in {socket} or after it."""
        data = request.get_json(silent=True) or {}
        try:
            canvas.connect(data.get('block_id'), data.get('parent_id'), data.get('socket'))
            return _ok({'workspace': canvas.save()})
        except (SketchEditorError, ValidationError) as e:
            return _fail(e, _status_for(e))
        except Exception as e:
            logger.exception("Failed to connect blocks")
            return _fail(e, 500)

    @app.route('/api/workspace/detach', methods=['POST'])
    def detach_block():
        data = request.get_json(silent=True) or {}
        try:
            detached = canvas.detach(data.get('block_id'))
            return _ok({'detached': detached})
        except (SketchEditorError, ValidationError) as e:
            return _fail(e, _status_for(e))

    @app.route('/api/workspace/blocks/<block_id>', methods=['DELETE'])
    def delete_block(block_id):
        try:
            removed = canvas.delete_block(block_id)
            return _ok({'removed': removed})
        except ProtectedBlockError as e:
            return _fail(e, 409)
        except SketchEditorError as e:
            return _fail(e)

    @app.route('/api/workspace/blocks/<block_id>/fields', methods=['PUT'])
    def set_block_field(block_id):
        """Change one field: {name, value}."""
        data = request.get_json(silent=True) or {}
        try:
            value = canvas.set_field(block_id, data.get('name'), data.get('value'))
            return _ok({'name': data.get('name'), 'value': value})
        except (SketchEditorError, ValidationError) as e:
            return _fail(e, _status_for(e))

    @app.route('/api/workspace/variables', methods=['POST'])
    def create_variable():
        data = request.get_json(silent=True) or {}
        try:
            created = canvas.create_variable(data.get('name'))
            return _ok({'created': created, 'variables': list(canvas.workspace.variables)})
        except ValidationError as e:
            return _fail(e)

    @app.route('/api/workspace/variables/<name>', methods=['DELETE'])
    def delete_variable(name):
        deleted = canvas.delete_variable(name)
        return _ok({'deleted': deleted, 'variables': list(canvas.workspace.variables)})

    @app.route('/api/workspace/clear', methods=['POST'])
    def clear_workspace():
        canvas.clear()
        return _ok({'workspace': canvas.save()})

    @app.route('/api/workspace/load', methods=['POST'])
    def load_workspace():
        """Load {workspace, components?}. Nothing changes if either is invalid."""
        data = request.get_json(silent=True) or {}
        try:
            components = _parse_components(data['components']) if 'components' in data else None
        except ValidationError as e:
            return _fail(e)
        staged = None
        if components is not None:
            try:
                staged = canvas.components.stage_components(components)
            except SketchEditorError as e:
                return _fail(e, 409)

        result = canvas.load(data.get('workspace'))
        if not result.success:
            return _fail(result.error)
        if staged is not None:
            canvas.components.use_selection(staged)
        return _ok({'blocks': result.workspace.block_count(),
                    'violations': [v.details for v in canvas.find_violations()]})

    # Generated code

    @app.route('/api/code', methods=['GET'])
    def get_code():
        return _ok(current_result().to_dict())

    @app.route('/api/code/download', methods=['GET'])
    def download_code():
        """Download the current sketch as an .ino file."""
        result = current_result()
        return Response(
            result.display_text,
            mimetype='text/plain',
            headers={'Content-Disposition': f'attachment; filename={settings.sketch_filename}'},
        )

    # Saved projects

    @app.route('/api/projects', methods=['GET'])
    def list_projects():
        return _ok(project_db.list_projects())

    @app.route('/api/projects', methods=['POST'])
    def save_project():
        """Save the current workspace and selection: {name, description?, id?}."""
        data = request.get_json(silent=True) or {}
        name = (data.get('name') or '').strip()
        if not name:
            return _fail(ValidationError("project name is required"))
        try:
            record = project_db.save_project(
                name,
                canvas.save(),
                [_component_dict(c) for c in canvas.components.get_components()],
                description=data.get('description', ''),
                project_id=data.get('id'),
            )
            return _ok(record)
        except Exception as e:
            logger.exception("Failed to save project")
            return _fail(e, 500)

    @app.route('/api/projects/<project_id>', methods=['GET'])
    def get_project(project_id):
        project = project_db.load_project(project_id)
        if project is None:
            return _fail(ValidationError(f"no project with id {project_id!r}"), 404)
        return _ok(project)

    @app.route('/api/projects/<project_id>', methods=['DELETE'])
    def delete_project(project_id):
        return _ok({'deleted': project_db.delete_project(project_id)})

    # Stored settings (read at the next start)

    def _unknown_setting(key):
        return _fail(ValidationError(f"unknown setting {key!r}"), 404)

    @app.route('/api/settings', methods=['GET'])
    def list_settings():
        stored = project_db.get_all_settings()
        return _ok({'stored': stored, 'effective': EditorSettings.load(stored).to_dict()})

    @app.route('/api/settings/<key>', methods=['GET'])
    def get_setting(key):
        key = key.lower()
        if key not in SETTING_ENV_VARS:
            return _unknown_setting(key)
        return _ok({'key': key, 'value': project_db.get_setting(key)})

    @app.route('/api/settings/<key>', methods=['PUT'])
    def put_setting(key):
        """Store an override: {value}."""
        key = key.lower()
        if key not in SETTING_ENV_VARS:
            return _unknown_setting(key)
        data = request.get_json(silent=True) or {}
        if data.get('value') is None:
            return _fail(ValidationError("'value' is required"))
        return _ok(project_db.set_setting(key, str(data['value'])))

    @app.route('/api/settings/<key>', methods=['DELETE'])
    def delete_setting(key):
        """Drop an override so the setting reverts to env / default."""
        key = key.lower()
        if key not in SETTING_ENV_VARS:
            return _unknown_setting(key)
        return _ok({'deleted': project_db.delete_setting(key)})

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    editor_settings = project_db.load_editor_settings()
    application = create_app(settings=editor_settings)

    print(f"Access the interface at: http://localhost:{editor_settings.port}")
    socketio.run(
        application,
        host=editor_settings.host,
        port=editor_settings.port,
        use_reloader=os.environ.get('SKETCH_EDITOR_RELOADER', '0') == '1',
        allow_unsafe_werkzeug=True,
    )
