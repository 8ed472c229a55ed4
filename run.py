from loto import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Use SocketIO server so peers can connect over websockets
    socketio.run(app, debug=False)
