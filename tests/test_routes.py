import pytest

from familytree.view_config import DEFAULT_TITLE


def create(client, **fields):
    data = {'name': 'Someone', 'gender': 'other', 'generation': 1}
    data.update(fields)
    resp = client.post('/api/members', json=data)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


@pytest.fixture
def family(client):
    """Married couple 1 + 2 with child 3, created through the API"""
    father = create(client, name='Nguyen Van A', gender='male')
    mother = create(client, name='Tran Thi B', gender='female', spouse_id=father['id'])
    child = create(client, name='Nguyen Van C', gender='male', generation=2,
                   father_id=father['id'], mother_id=mother['id'], address='Da Nang')
    return father['id'], mother['id'], child['id']


# ==================== MEMBERS ====================

def test_create_member_sets_spouse_back_reference(client, family):
    father_id, mother_id, _ = family
    father = client.get(f'/api/members/{father_id}').get_json()
    assert father['spouse_id'] == mother_id


def test_create_member_stores_blank_as_null(client):
    member = create(client, birth_date='', branch_name='', father_id='')
    assert member['birth_date'] is None
    assert member['branch_name'] is None
    assert member['father_id'] is None


@pytest.mark.parametrize('payload, message', [
    ({'gender': 'male'}, 'Name is required'),
    ({'name': 'X', 'gender': 'robot'}, 'Invalid gender'),
    ({'name': 'X', 'father_id': 'abc'}, 'father_id must be an integer'),
    ({'name': 'X', 'generation': 0}, 'generation must be at least 1'),
])
def test_create_member_validation(client, payload, message):
    resp = client.post('/api/members', json=payload)
    assert resp.status_code == 400
    assert message in resp.get_json()['error']


def test_create_member_requires_object(client):
    resp = client.post('/api/members', data='nope', content_type='application/json')
    assert resp.status_code == 400


def test_update_member_moves_spouse(client, family):
    father_id, mother_id, _ = family
    other = create(client, name='Le Thi D', gender='female')

    resp = client.put(f'/api/members/{father_id}', json={'spouse_id': other['id']})
    assert resp.status_code == 200
    assert resp.get_json()['spouse_id'] == other['id']

    assert client.get(f"/api/members/{other['id']}").get_json()['spouse_id'] == father_id
    assert client.get(f'/api/members/{mother_id}').get_json()['spouse_id'] is None


def test_update_member_partial(client, family):
    _, _, child_id = family
    resp = client.put(f'/api/members/{child_id}', json={'death_date': '2020'})
    data = resp.get_json()
    assert data['death_date'] == '2020'
    assert data['name'] == 'Nguyen Van C'


def test_update_unknown_member(client):
    assert client.put('/api/members/404', json={'name': 'X'}).status_code == 404


def test_delete_member(client, family):
    _, _, child_id = family
    assert client.delete(f'/api/members/{child_id}').status_code == 204
    assert client.get(f'/api/members/{child_id}').status_code == 404


def test_search_members(client, family):
    results = client.get('/api/members?q=nguyen').get_json()
    assert [m['name'] for m in results] == ['Nguyen Van A', 'Nguyen Van C']
    results = client.get('/api/members?q=da%20nang').get_json()
    assert [m['name'] for m in results] == ['Nguyen Van C']
    assert len(client.get('/api/members').get_json()) == 3


# ==================== CONFIG ====================

def test_config_defaults(client):
    config = client.get('/api/config').get_json()
    assert config['id'] == 1
    assert config['title'] == DEFAULT_TITLE
    assert config['tree_scale'] == 1.0
    assert config['title_font_size'] == 48
    assert config['title_lines'] is None


def test_config_partial_update_ignores_unknown_keys(client):
    resp = client.post('/api/config', json={'title': 'Ho Pham', 'tree_x': 30, 'id': 9, 'color': 'red'})
    data = resp.get_json()
    assert data['success'] is True
    assert data['config']['title'] == 'Ho Pham'
    assert data['config']['tree_x'] == 30
    assert data['config']['id'] == 1
    assert 'color' not in data['config']

    resp = client.put('/api/config', json={'tree_y': 7})
    assert resp.get_json()['config']['tree_x'] == 30


def test_config_empty_patch_is_noop(client):
    resp = client.post('/api/config', json={})
    assert resp.status_code == 200
    assert resp.get_json()['success'] is True


@pytest.mark.parametrize('body', [[1, 2], 'text'])
def test_config_rejects_non_object(client, body):
    assert client.post('/api/config', json=body).status_code == 400


def test_config_rejects_non_numeric_transform(client):
    resp = client.post('/api/config', json={'tree_scale': 'huge'})
    assert resp.status_code == 400
    assert 'tree_scale' in resp.get_json()['error']


def test_title_block(client):
    client.post('/api/config', json={'title_lines': '[{"text": "Gia Pha", "fontSize": 50}, {"text": "Ho Vu"}]'})
    data = client.get('/api/tree/title').get_json()
    assert [line['text'] for line in data['lines']] == ['Gia Pha', 'Ho Vu']
    assert data['lines'][1]['y'] == pytest.approx(60)
    assert data['lines'][1]['fontSize'] == 48


# ==================== TREE ====================

def test_tree_layout(client, family):
    father_id, mother_id, child_id = family
    data = client.get('/api/tree/layout').get_json()
    assert data['strategy'] == 'subtree'
    positions = data['positions']
    assert positions[str(father_id)] == {'x': -185, 'y': 250}
    assert positions[str(mother_id)] == {'x': 5, 'y': 250}
    assert positions[str(child_id)] == {'x': -90, 'y': 510}

    kinds = sorted(c['kind'] for c in data['connectors'])
    assert kinds == ['parentChild', 'spousal']
    parent_line = next(c for c in data['connectors'] if c['kind'] == 'parentChild')
    assert parent_line['member_ids'] == [father_id, mother_id, child_id]

    labels = {m['id']: m['location_label'] for m in data['members']}
    assert labels[child_id] == 'Da Nang'


def test_tree_layout_strategy_choice(client, family):
    assert client.get('/api/tree/layout?strategy=generation').get_json()['strategy'] == 'generation'
    assert client.get('/api/tree/layout?strategy=spiral').status_code == 400


def test_tree_layout_empty(client):
    data = client.get('/api/tree/layout').get_json()
    assert data['positions'] == {}
    assert data['bounds'] is None
    assert data['connectors'] == []


def test_fit_view_persists_transform(client, family):
    resp = client.post('/api/tree/view/fit', json={'width': 800, 'height': 600})
    assert resp.status_code == 200
    data = resp.get_json()
    # tree is 370 x 400: scale limited by the available height (600 - 240) / 400
    assert data['transform']['tree']['scale'] == pytest.approx(0.9)
    config = client.get('/api/config').get_json()
    assert config['tree_scale'] == pytest.approx(0.9)
    assert config['tree_x'] == pytest.approx(400)


def test_fit_view_without_members(client):
    resp = client.post('/api/tree/view/fit', json={'width': 800, 'height': 600})
    assert resp.get_json()['patch'] is None


def test_fit_view_needs_size(client, family):
    assert client.post('/api/tree/view/fit', json={}).status_code == 400


def test_zoom_view(client):
    resp = client.post('/api/tree/view/zoom', json={'factor': 2, 'width': 800, 'height': 600,
                                                    'anchor_x': 0, 'anchor_y': 0})
    assert resp.get_json()['patch'] == {'tree_x': 0, 'tree_y': 0, 'tree_scale': 2}
    assert client.get('/api/config').get_json()['tree_scale'] == 2


@pytest.mark.parametrize('body', [{'factor': 0}, {'factor': 'x'}, {}])
def test_zoom_view_validation(client, body):
    assert client.post('/api/tree/view/zoom', json=body).status_code == 400


def test_pan_view_title(client):
    resp = client.post('/api/tree/view/pan', json={'dx': 5, 'dy': -5, 'target': 'title'})
    assert resp.get_json()['patch'] == {'title_x': 55, 'title_y': 45}
    assert client.post('/api/tree/view/pan', json={'dx': 1, 'dy': 1, 'target': 'x'}).status_code == 400


def test_reset_view(client):
    client.post('/api/config', json={'tree_x': 10, 'tree_y': 20, 'tree_scale': 3})
    resp = client.post('/api/tree/view/reset', json={})
    assert resp.get_json()['transform']['tree'] == {'x': 0, 'y': 0, 'scale': 1}
    config = client.get('/api/config').get_json()
    assert config['tree_x'] is None
    assert config['tree_scale'] is None


@pytest.mark.parametrize('endpoint', ['fit', 'zoom', 'pan', 'reset'])
def test_view_endpoints_reject_non_object(client, endpoint):
    resp = client.post(f'/api/tree/view/{endpoint}', json=[1, 2])
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Invalid request body'


@pytest.mark.parametrize('target', [['tree'], {'name': 'tree'}, 3])
def test_pan_view_rejects_malformed_target(client, target):
    resp = client.post('/api/tree/view/pan', json={'dx': 1, 'dy': 2, 'target': target})
    assert resp.status_code == 400
    assert 'Unknown transform target' in resp.get_json()['error']


def test_zoom_view_centre_needs_size(client):
    resp = client.post('/api/tree/view/zoom', json={'factor': 2})
    assert resp.status_code == 400
    assert client.get('/api/config').get_json()['tree_scale'] == 1.0

    resp = client.post('/api/tree/view/zoom', json={'factor': 2, 'width': 800, 'height': 600})
    assert resp.status_code == 200
    assert resp.get_json()['patch'] == {'tree_x': -400, 'tree_y': -300, 'tree_scale': 2}
