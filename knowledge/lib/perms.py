'''
Ownership checks for documents carrying a meta.creatorAddress.
'''
import logging

import knowledge.exc as k_exc

logger = logging.getLogger(__name__)

def getCreator(doc):
    '''
    Return the creatorAddress of a document ( or None ).
    '''
    if not doc:
        return None

    meta = doc.get('meta')
    if not isinstance(meta, dict):
        return None

    creator = meta.get('creatorAddress')
    if not creator:
        return None

    return creator

def allowed(doc, requester, anon_writable=True):
    '''
    Returns True if the requester may mutate or delete the stored document.

    Args:
        doc (dict): The stored document ( or None for a new document ).
        requester (str): The creatorAddress presented by the caller ( or None ).
        anon_writable (bool): Whether documents without a creator may be written by anyone.
    '''
    if doc is None:
        return True

    owner = getCreator(doc)
    if owner is None:
        return anon_writable

    if not requester:
        return True

    return owner == requester

def reqAllowed(doc, requester, anon_writable=True, name='entity'):
    '''
    Raise AccessDenied if the requester may not mutate the stored document.
    '''
    if allowed(doc, requester, anon_writable=anon_writable):
        return

    iden = doc.get('id')
    owner = getCreator(doc)

    if owner is None:
        mesg = f'Access denied: {name} {iden!r} has no creator and anonymous writes are disabled.'
    else:
        mesg = f'Access denied: {name} {iden!r} can only be modified by its creator ({owner}).'

    logger.warning(mesg, extra={'knowledge': {'iden': iden, 'owner': owner, 'requester': requester}})
    raise k_exc.AccessDenied(mesg=mesg, iden=iden, owner=owner, requester=requester)
