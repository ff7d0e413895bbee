bind = "unix:/var/www/contact-admin/gunicorn.sock"
# The operator AuthState lives in the worker process unguarded by locks,
# between threads, so one sync worker serves requests one at a time.
workers = 1
worker_class = "sync"
worker_tmp_dir = "/dev/shm"
timeout = 120
keepalive = 5

# Logging
accesslog = "/var/log/contact-admin/access.log"
errorlog = "/var/log/contact-admin/error.log"
loglevel = "info"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'

# Process naming
proc_name = "contact-admin"

# Server mechanics
daemon = False
pidfile = "/var/run/contact-admin/gunicorn.pid"
umask = 0o007


def post_worker_init(worker):
    """Restore any persisted operator session once the worker is up."""
    from asgiref.sync import async_to_sync

    from accounts.services import get_session_manager
    from core.exceptions import ContactAdminError

    try:
        state = async_to_sync(get_session_manager().initialize)()
        worker.log.info(f"Operator auth state: {state.status}")
    except ContactAdminError as e:
        worker.log.warning(f"Operator session not restored: {e.code}")
