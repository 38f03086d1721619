import io
import os

from sqlalchemy.exc import OperationalError

from models import db


def image(name='photo.png', mimetype='image/png', size=64):
    return (io.BytesIO(b'\x89PNG' + b'0' * size), name, mimetype)


def create_note(client, headers, images=(), **fields):
    data = {"title": "Groceries", "content": "Milk, eggs", **fields}
    if images:
        data['images'] = list(images)
    response = client.post('/api/notes', headers=headers, data=data, content_type='multipart/form-data')
    assert response.status_code == 201, response.get_json()
    return response.get_json()['note']


def stored_file(app, filename):
    return os.path.join(app.config['UPLOAD_FOLDER'], 'notes', filename)


def test_create_note_with_images(app, client, auth_headers):
    note = create_note(client, auth_headers, images=[image('a.png'), image('b.jpg', 'image/jpeg')],
                       color='#fde68a', isPinned='true')

    assert note['isPinned'] is True
    assert note['color'] == '#fde68a'
    assert len(note['images']) == 2
    for attachment in note['images']:
        assert attachment['path'] == f"/uploads/notes/{attachment['filename']}"
        assert attachment['uploadedAt']
        assert os.path.exists(stored_file(app, attachment['filename']))

    served = client.get(note['images'][0]['path'])
    assert served.status_code == 200
    assert served.data.startswith(b'\x89PNG')


def test_create_note_rejects_non_images(client, auth_headers):
    response = client.post('/api/notes', headers=auth_headers, content_type='multipart/form-data', data={
        "title": "Bad", "content": "file", "images": [(io.BytesIO(b'hello'), 'notes.txt', 'text/plain')],
    })
    assert response.status_code == 400
    assert response.get_json()['message'] == 'Only image files are allowed!'


def test_create_note_rejects_too_many_or_too_large_images(client, auth_headers):
    too_many = client.post('/api/notes', headers=auth_headers, content_type='multipart/form-data', data={
        "title": "Many", "content": "x", "images": [image(f"{i}.png") for i in range(6)],
    })
    assert too_many.status_code == 400

    too_large = client.post('/api/notes', headers=auth_headers, content_type='multipart/form-data', data={
        "title": "Big", "content": "x", "images": [image('big.png', size=5 * 1024 * 1024)],
    })
    assert too_large.status_code == 400


def test_create_note_requires_title_and_content(client, auth_headers):
    response = client.post('/api/notes', headers=auth_headers, content_type='multipart/form-data',
                           data={"title": "  ", "content": ""})
    assert response.status_code == 400


def test_update_note_removes_and_adds_images(app, client, auth_headers):
    note = create_note(client, auth_headers, images=[image('a.png'), image('b.png')])
    removed = note['images'][0]['filename']
    kept = note['images'][1]['filename']

    response = client.put(f"/api/notes/{note['id']}", headers=auth_headers, content_type='multipart/form-data',
                          data={"title": "Groceries v2", "removedImages": f'["{removed}"]',
                                "images": [image('c.gif', 'image/gif')]})
    assert response.status_code == 200
    updated = response.get_json()['note']

    filenames = [attachment['filename'] for attachment in updated['images']]
    assert updated['title'] == 'Groceries v2'
    assert updated['content'] == 'Milk, eggs'
    assert removed not in filenames
    assert filenames[0] == kept
    assert len(filenames) == 2
    assert not os.path.exists(stored_file(app, removed))


def test_failed_update_keeps_files_and_metadata(app, client, auth_headers, monkeypatch):
    note = create_note(client, auth_headers, images=[image('a.png')])
    original = note['images'][0]['filename']

    def broken_commit():
        raise OperationalError('UPDATE notes', {}, Exception('disk I/O error'))

    monkeypatch.setattr(db.session, 'commit', broken_commit)
    response = client.put(f"/api/notes/{note['id']}", headers=auth_headers, content_type='multipart/form-data',
                          data={"removedImages": f'["{original}"]', "images": [image('b.png')]})
    monkeypatch.undo()
    assert response.status_code == 500

    assert os.path.exists(stored_file(app, original))
    assert os.listdir(os.path.dirname(stored_file(app, original))) == [original]
    reloaded = client.get('/api/notes', headers=auth_headers).get_json()['notes'][0]
    assert [attachment['filename'] for attachment in reloaded['images']] == [original]


def test_toggle_pin(client, auth_headers):
    note = create_note(client, auth_headers)
    url = f"/api/notes/{note['id']}/pin"
    assert client.patch(url, headers=auth_headers).get_json()['note']['isPinned'] is True
    assert client.patch(url, headers=auth_headers).get_json()['note']['isPinned'] is False
    assert client.patch('/api/notes/999/pin', headers=auth_headers).status_code == 404


def test_pinned_notes_listed_first(client, auth_headers):
    create_note(client, auth_headers, title='Plain')
    pinned = create_note(client, auth_headers, title='Pinned', isPinned='true')
    notes = client.get('/api/notes', headers=auth_headers).get_json()['notes']
    assert notes[0]['id'] == pinned['id']


def test_delete_note_survives_missing_file(app, client, auth_headers):
    note = create_note(client, auth_headers, images=[image('a.png'), image('b.png')])
    first, second = (attachment['filename'] for attachment in note['images'])
    os.remove(stored_file(app, first))

    response = client.delete(f"/api/notes/{note['id']}", headers=auth_headers)

    assert response.status_code == 200
    assert client.get(f"/api/notes/{note['id']}", headers=auth_headers).status_code == 404
    assert not os.path.exists(stored_file(app, second))


def test_delete_all_notes(app, client, auth_headers):
    note = create_note(client, auth_headers, images=[image('a.png')])
    create_note(client, auth_headers, title='Second')

    response = client.delete('/api/notes', headers=auth_headers)
    assert response.get_json()['deleted'] == 2
    assert client.get('/api/notes', headers=auth_headers).get_json()['notes'] == []
    assert not os.path.exists(stored_file(app, note['images'][0]['filename']))
