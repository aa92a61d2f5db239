from __future__ import annotations

import json

from starlette.requests import Request

WIDGET_CONTENT_TYPE = "application/javascript; charset=utf-8"
WIDGET_CACHE_CONTROL = "public, max-age=300"

WIDGET_SCRIPT_TEMPLATE = """(function(){
'use strict';
var API_BASE=__API_BASE__;
var TOKEN=__SITE_TOKEN__;
if(!TOKEN){console.warn('LeadDesk: token not set');return;}
var container=document.getElementById('leaddesk-lead-form');
if(!container){
  container=document.createElement('div');
  container.id='leaddesk-lead-form';
  var s=document.getElementsByTagName('script')[0];
  s.parentNode.insertBefore(container,s.nextSibling);
}
function meta(){
  var n=typeof navigator!='undefined'?navigator:{},sc=typeof screen!='undefined'?screen:{},o={};
  if(sc.width&&sc.height)o.screen=sc.width+'x'+sc.height;
  if(n.language)o.language=n.language;
  if(n.platform)o.platform=n.platform;
  try{var tz=Intl.DateTimeFormat().resolvedOptions().timeZone;if(tz)o.timezone=tz;}catch(e){}
  if(n.deviceMemory!=null)o.device_memory=String(n.deviceMemory);
  if(n.hardwareConcurrency!=null)o.hardware_concurrency=String(n.hardwareConcurrency);
  if(typeof document!='undefined'&&document.referrer)o.referrer=document.referrer;
  return o;
}
container.innerHTML='<form id="leaddesk-form" class="leaddesk-form" novalidate>'+
'<div class="leaddesk-f"><label for="leaddesk-name">Name *</label><input type="text" id="leaddesk-name" name="name" required placeholder="Name"></div>'+
'<div class="leaddesk-f"><label for="leaddesk-phone">Phone</label><input type="tel" id="leaddesk-phone" name="phone" placeholder="Phone"></div>'+
'<div class="leaddesk-f"><label for="leaddesk-email">Email</label><input type="email" id="leaddesk-email" name="email" placeholder="Email"></div>'+
'<div class="leaddesk-f"><label for="leaddesk-info">Additional information</label><textarea id="leaddesk-info" name="info" placeholder="Comment"></textarea></div>'+
'<div class="leaddesk-f"><button type="submit" id="leaddesk-submit">Send</button></div>'+
'<p id="leaddesk-msg" class="leaddesk-msg"></p></form>';
var st=document.createElement('style');
st.textContent='.leaddesk-form{font-family:system-ui,sans-serif;max-width:400px;margin:0 auto;padding:1rem}.leaddesk-f{margin-bottom:1rem}.leaddesk-f label{display:block;font-size:0.85rem;margin-bottom:0.25rem;color:#333}.leaddesk-f input,.leaddesk-f textarea{width:100%;padding:0.5rem 0.75rem;font-size:1rem;border:1px solid #ccc;border-radius:6px;box-sizing:border-box}.leaddesk-f textarea{min-height:80px;resize:vertical}.leaddesk-f button{padding:0.6rem 1.2rem;font-size:1rem;background:#2f6fdf;color:#fff;border:none;border-radius:6px;cursor:pointer}.leaddesk-f button:disabled{opacity:0.7;cursor:not-allowed}.leaddesk-msg{margin-top:0.75rem;font-size:0.875rem;min-height:1.25em}';
container.insertBefore(st,container.firstChild);
var form=document.getElementById('leaddesk-form'),msg=document.getElementById('leaddesk-msg'),btn=document.getElementById('leaddesk-submit');
function err(t){msg.textContent=t;msg.style.color='#c00';}
function ok(t){msg.textContent=t;msg.style.color='#0a0';}
form.addEventListener('submit',function(e){
  e.preventDefault();
  var name=(document.getElementById('leaddesk-name').value||'').trim();
  if(!name){err('Please enter your name.');return;}
  var data={token:TOKEN,name:name,phone:(document.getElementById('leaddesk-phone').value||'').trim(),email:(document.getElementById('leaddesk-email').value||'').trim(),additional_info:(document.getElementById('leaddesk-info').value||'').trim(),source_meta:meta()};
  btn.disabled=true;msg.textContent='Sending...';msg.style.color='#666';
  fetch(API_BASE+'/leads/from-site',{method:'POST',headers:{'Content-Type':'application/json'},body:JSON.stringify(data)})
    .then(function(r){
      if(r.ok){ok('Request sent.');form.reset();}
      else return r.json().then(function(b){var m=b.message||r.statusText;throw new Error(Array.isArray(m)?m.join(' '):m);}).catch(function(){throw new Error(r.status+' '+r.statusText);});
    })
    .catch(function(e){err(e.message==='Failed to fetch'||e.name==='TypeError'?'Connection error. Please try again later.':e.message||'Failed to send.');})
    .finally(function(){btn.disabled=false;});
});
})();
"""


def resolve_api_base(request: Request) -> str:
    protocol = request.headers.get("x-forwarded-proto") or request.url.scheme or "https"
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or "localhost:8000"
    return f"{protocol.split(',')[0].strip()}://{host.split(',')[0].strip()}/api".rstrip("/")


def render_widget_script(api_base: str, token: str) -> str:
    # json.dumps yields a quoted JS string literal, so header values cannot break out of it.
    return WIDGET_SCRIPT_TEMPLATE.replace("__API_BASE__", json.dumps(api_base)).replace(
        "__SITE_TOKEN__", json.dumps(token)
    )
