from .conftest import register


def create_task(client, headers, **fields):
    payload = {"title": "Write report", **fields}
    response = client.post('/api/tasks', headers=headers, json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['task']


def test_task_routes_require_auth(client):
    assert client.get('/api/tasks').status_code == 401
    assert client.post('/api/tasks', json={"title": "x"}).status_code == 401


def test_create_and_list_tasks(client, auth_headers):
    task = create_task(client, auth_headers, description='Q3 numbers', dueDate='2024-01-02T08:00:00')
    assert task['status'] == 'pending'
    assert task['dueDate'] == '2024-01-02T08:00:00'

    body = client.get('/api/tasks', headers=auth_headers).get_json()
    assert [t['id'] for t in body['tasks']] == [task['id']]


def test_create_task_requires_title(client, auth_headers):
    response = client.post('/api/tasks', headers=auth_headers, json={"description": "no title"})
    assert response.status_code == 400


def test_update_task(client, auth_headers):
    task = create_task(client, auth_headers)
    response = client.put(f"/api/tasks/{task['id']}", headers=auth_headers,
                          json={"title": "Write final report", "dueDate": None})
    assert response.status_code == 200
    updated = response.get_json()['task']
    assert updated['title'] == 'Write final report'
    assert updated['dueDate'] is None


def test_set_task_status(client, auth_headers):
    task = create_task(client, auth_headers)
    url = f"/api/tasks/{task['id']}/status"

    assert client.patch(url, headers=auth_headers, json={"status": "complete"}).get_json()['task']['status'] == 'complete'
    assert client.patch(url, headers=auth_headers, json={"status": "done"}).status_code == 400
    assert client.patch('/api/tasks/999/status', headers=auth_headers, json={"status": "complete"}).status_code == 404


def test_other_users_tasks_are_not_found(client, auth_headers):
    task = create_task(client, auth_headers)
    other = register(client, name='Bob', email='bob@example.com')
    other_headers = {"Authorization": f"Bearer {other['token']}"}

    assert client.get(f"/api/tasks/{task['id']}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/tasks/{task['id']}", headers=other_headers).status_code == 404
    assert client.get('/api/tasks', headers=other_headers).get_json()['tasks'] == []


def test_delete_and_clear_tasks(client, auth_headers):
    first = create_task(client, auth_headers)
    create_task(client, auth_headers, title='Second')

    assert client.delete(f"/api/tasks/{first['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/tasks/{first['id']}", headers=auth_headers).status_code == 404

    cleared = client.delete('/api/tasks', headers=auth_headers).get_json()
    assert cleared['deleted'] == 1
    assert client.get('/api/tasks', headers=auth_headers).get_json()['tasks'] == []
