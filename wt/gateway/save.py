from wt.common.logger import log
from wt.core.export import build_attribute_rows
from wt.gateway.client import IdentityMismatchError

# Writes one finished workout to the backend: sign in as the athlete, resolve their user row, make sure it's the
# identity we're signed in as, then insert the session and its attribute rows. Every request after sign-in carries
# that identity's token, even if another save switches the shared identity meanwhile. Any GatewayError propagates
# to the caller. There's no rollback, so a failure on the attribute insert leaves the session row behind.
def save_workout(gateway, athlete, summary, start_time=None, end_time=None):
    identity = gateway.authenticate(athlete)
    user_id = gateway.find_user_by_name(athlete, identity=identity)
    if str(user_id) != str(identity.user_id):
        log.error(f"User row for '{athlete}' is {user_id} but signed in as {identity.user_id}, aborting save")
        gateway.sign_out(identity)
        raise IdentityMismatchError(
            f"User id for '{athlete}' ({user_id}) doesn't match the signed-in identity ({identity.user_id})")

    session_id = gateway.insert_session(
        user_id, start_time or summary.started_at, end_time or summary.ended_at, identity=identity)
    rows = build_attribute_rows(summary, session_id)
    gateway.insert_attribute_rows(rows, identity=identity)
    log.info(f"Saved workout for '{athlete}' as session {session_id} with {len(rows)} attributes")
    return session_id
